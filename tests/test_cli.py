"""Tests for CLI option parsing and commands."""

import json
import random
from pathlib import Path
from unittest.mock import patch

import pytest

from club_data import cli, config_commands, edge_commands, task_commands
from club_data.config import Config
from club_data.errors import QuerySpecError
from club_data.keys import KeyType
from club_data.models import FilterOp, PaginationMode, SortDirection
from club_data.outreach import OutreachStore
from club_data.registry import build_default_registry
from club_data.services import ClubService


@pytest.fixture
def service(table) -> ClubService:
    outreach = OutreachStore(table, rng=random.Random(2))
    outreach.create_task("l1", "creator", "Welcome calls", ["a", "b"], task_id="task1")
    return ClubService(build_default_registry(table), outreach, lambda: "v1")


def test_build_query_spec_parses_filters_and_sort() -> None:
    """Test the field:op:value and field:desc option syntax."""
    spec = cli.build_query_spec(filter="userType:eq:LEAD, age:gt:30", sort="createdAt:desc", limit=10)

    assert [(f.field, f.op, f.value) for f in spec.filters] == [
        ("userType", FilterOp.EQ, "LEAD"),
        ("age", FilterOp.GT, 30),
    ]
    assert spec.sort.direction == SortDirection.DESC
    assert spec.pagination.mode == PaginationMode.OFFSET
    assert spec.pagination.limit == 10


def test_build_query_spec_pagination() -> None:
    """Test cursor mode selection and the absent pagination."""
    assert cli.build_query_spec().pagination is None

    spec = cli.build_query_spec(cursor="abc")
    assert spec.pagination.to_dict() == {"mode": "cursor", "limit": 20, "cursor": "abc"}


def test_build_query_spec_rejects_bad_input() -> None:
    """Test malformed filters and operators."""
    with pytest.raises(ValueError, match="expected field:op:value"):
        cli.build_query_spec(filter="name=john")
    with pytest.raises(QuerySpecError):
        cli.build_query_spec(filter="name:like:john")


def test_parse_value() -> None:
    """Test JSON values with a text fallback."""
    assert cli.parse_value("42") == 42
    assert cli.parse_value("true") is True
    assert cli.parse_value("john") == "john"
    assert cli.parse_value("a:b") == "a:b"


def test_query_command_prints_json(service: ClubService, capsys: pytest.CaptureFixture[str]) -> None:
    """Test the query command output."""
    with patch("club_data.cli.get_service", return_value=service):
        cli.query("roles", limit=5)
    assert json.loads(capsys.readouterr().out) == {"items": [], "totalCount": 0}


def test_failure_exits_non_zero(service: ClubService, capsys: pytest.CaptureFixture[str]) -> None:
    """Test that failed envelopes go to stderr."""
    with patch("club_data.cli.get_service", return_value=service):
        with pytest.raises(SystemExit) as exc:
            cli.get("widgets", "1")
    assert exc.value.code == 1
    assert "Unknown resource 'widgets'" in capsys.readouterr().err


def test_task_assign_and_mine(service: ClubService, capsys: pytest.CaptureFixture[str]) -> None:
    """Test claiming targets from the command line."""
    with patch("club_data.cli.get_service", return_value=service):
        task_commands.assign("task1", count=3)
        out = capsys.readouterr().out
        assert "Assigned 2 target(s)" in out
        assert "1 fewer than requested" in out

        task_commands.mine()
        assert "Found 2 assignment(s)" in capsys.readouterr().out

        task_commands.interact("task1", "a", called=True, rating=5)
        assert "Recorded interaction with a (completed)" in capsys.readouterr().out


def test_task_show(table, capsys: pytest.CaptureFixture[str]) -> None:
    """Test the task summary."""
    outreach = OutreachStore(table, rng=random.Random(2))
    outreach.create_task("l1", "creator", "Welcome calls", ["a", "b"], task_id="task1")
    outreach.self_assign("task1", "v1", 1)

    with patch("club_data.cli.get_outreach", return_value=outreach):
        task_commands.show("task1")
        out = capsys.readouterr().out
        assert "Status: IN_PROGRESS" in out
        assert "unassigned" in out
        assert "ASSIGNED by v1" in out

        task_commands.show("nope")
        assert "Task nope not found" in capsys.readouterr().out


def test_edge_add_and_list(graph, capsys: pytest.CaptureFixture[str]) -> None:
    """Test linking entities by key."""
    with patch("club_data.cli.get_graph", return_value=graph):
        edge_commands.add("USER#u1", "LOCATION#l1", "LOCATION#l2")
        assert "Added 2 edge(s) from USER#u1" in capsys.readouterr().out

        edge_commands.list_edges("LOCATION#l1", "user")
        assert "LOCATION#l1 --[reverse]--> USER#u1" in capsys.readouterr().out

        edge_commands.remove("USER#u1", "LOCATION#l2")
    assert graph.neighbor_ids(KeyType.USER, "u1", KeyType.LOCATION) == ["l1"]


def test_config_set_validates_values(tmp_path: Path) -> None:
    """Test that known settings are type checked before saving."""
    with pytest.raises(ValueError, match="Unknown setting"):
        config_commands._check("dynamodb.tabel", "x")
    with pytest.raises(ValueError, match="expects a int"):
        config_commands._check("assign.max_rounds", "many")
    config_commands._check("dynamodb.timeout", "2.5")


def test_config_show_reports_origin(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    """Test where each effective value comes from."""
    monkeypatch.setattr(Path, "home", lambda: tmp_path / "home")
    monkeypatch.setenv("AWS_REGION", "eu-central-1")
    monkeypatch.delenv("DYNAMODB_TABLE_NAME", raising=False)
    monkeypatch.delenv("DYNAMODB_ENDPOINT", raising=False)
    config = Config(config_dir=tmp_path / "local")
    config.set("user.id", "u1")

    with patch("club_data.config_commands.get_config", return_value=config):
        config_commands.show()
    lines = capsys.readouterr().out.splitlines()

    assert "user.id = u1  (config)" in lines
    assert "dynamodb.region = eu-central-1  (env AWS_REGION)" in lines
    assert "dynamodb.table = club-entities  (default)" in lines
    assert "dynamodb.endpoint =   (unset)" in lines
