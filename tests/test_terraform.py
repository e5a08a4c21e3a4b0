"""Tests for Terraform state/tfvars reading and import rendering."""

import json
import subprocess
from unittest.mock import patch

import pytest

from core.errors import StateReadError
from core.import_plan import fncBuildImportPlan
from core.models import Environment
from handlers.terraform.render import fncRenderImportBlocks, fncRenderVariables
from handlers.terraform.state import fncPullState, fncReadPriorVariables, fncReadState

from conftest import SUB, make_assignment, state_document


class TestReadState:
    """State source resolution."""

    def test_reads_state_file(self, tmp_path):
        path = tmp_path / "s.tfstate"
        path.write_text(json.dumps(state_document([{"id": "/a"}])), encoding="utf-8")

        doc = fncReadState(Environment("dev", SUB, state_file=str(path)))
        assert doc["resources"][0]["type"] == "azurerm_role_assignment"

    def test_missing_file(self, tmp_path):
        with pytest.raises(StateReadError, match="not found"):
            fncReadState(Environment("dev", SUB, state_file=str(tmp_path / "nope.tfstate")))

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.tfstate"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(StateReadError, match="could not parse"):
            fncReadState(Environment("dev", SUB, state_file=str(path)))

    def test_no_source_configured(self):
        with pytest.raises(StateReadError, match="no state_file or terraform_dir"):
            fncReadState(Environment("dev", SUB))

    def test_terraform_dir_uses_state_pull(self, tmp_path):
        with patch("handlers.terraform.state.fncPullState", return_value={"version": 4}) as pull:
            doc = fncReadState(Environment("dev", SUB, terraform_dir=str(tmp_path)))

        assert doc == {"version": 4}
        pull.assert_called_once_with("dev", str(tmp_path))


class TestPullState:
    """`terraform state pull` wrapper."""

    def completed(self, returncode=0, stdout="", stderr=""):
        return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)

    def test_success(self):
        with patch("handlers.terraform.state.shutil.which", return_value="/usr/bin/terraform"), \
                patch("handlers.terraform.state.subprocess.run",
                      return_value=self.completed(stdout=json.dumps({"version": 4}))) as run:
            doc = fncPullState("dev", "/work/dev")

        assert doc == {"version": 4}
        assert run.call_args[0][0] == ["/usr/bin/terraform", "-chdir=/work/dev", "state", "pull"]

    def test_binary_missing(self):
        with patch("handlers.terraform.state.shutil.which", return_value=None):
            with pytest.raises(StateReadError, match="not found on PATH"):
                fncPullState("dev", "/work/dev")

    @pytest.mark.parametrize("proc,message", [
        ((1, "", "Error: backend init required"), "exited 1"),
        ((0, "   ", ""), "no state"),
        ((0, "<html>", ""), "not valid JSON"),
    ])
    def test_failures(self, proc, message):
        with patch("handlers.terraform.state.shutil.which", return_value="/usr/bin/terraform"), \
                patch("handlers.terraform.state.subprocess.run", return_value=self.completed(*proc)):
            with pytest.raises(StateReadError, match=message):
                fncPullState("dev", "/work/dev")

    def test_timeout(self):
        with patch("handlers.terraform.state.shutil.which", return_value="/usr/bin/terraform"), \
                patch("handlers.terraform.state.subprocess.run",
                      side_effect=subprocess.TimeoutExpired(cmd="terraform", timeout=1)):
            with pytest.raises(StateReadError, match="state pull failed"):
                fncPullState("dev", "/work/dev")


class TestPriorVariables:
    """Existing role_assignments tfvars."""

    def test_missing_file_is_empty(self, tmp_path):
        assert fncReadPriorVariables(str(tmp_path / "none.json")) == {}
        assert fncReadPriorVariables(None) == {}

    def test_wrapped_and_bare(self, tmp_path):
        wrapped = tmp_path / "w.json"
        wrapped.write_text(json.dumps({"role_assignments": {"0": {"scope": "/s"}}}), encoding="utf-8")
        bare = tmp_path / "b.json"
        bare.write_text(json.dumps({"4": {"scope": "/s"}}), encoding="utf-8")

        assert fncReadPriorVariables(str(wrapped)) == {"0": {"scope": "/s"}}
        assert fncReadPriorVariables(str(bare)) == {"4": {"scope": "/s"}}

    def test_invalid_json_raises(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("{", encoding="utf-8")

        with pytest.raises(ValueError):
            fncReadPriorVariables(str(bad))


class TestRender:
    """Import blocks and variables."""

    def test_import_blocks(self):
        a = make_assignment("a1", principal_display_name="Alice")
        plan = fncBuildImportPlan([a], max_index=4)

        text = fncRenderImportBlocks(plan)

        assert 'to = azurerm_role_assignment.this["5"]' in text
        assert f'id = "{a.assignment_id}"' in text
        assert "# Alice -> Reader" in text

    def test_custom_resource_address(self):
        plan = fncBuildImportPlan([make_assignment("a1")])

        assert 'module.rbac.azurerm_role_assignment.main["0"]' in fncRenderImportBlocks(
            plan, "module.rbac.azurerm_role_assignment.main")

    def test_variables_merge_prior(self):
        plan = fncBuildImportPlan([make_assignment("a1"), make_assignment("a2")], max_index=0)

        doc = fncRenderVariables(plan, {"0": {"scope": "/old"}})

        assert list(doc) == ["role_assignments"]
        assert list(doc["role_assignments"]) == ["0", "1", "2"]
        assert doc["role_assignments"]["0"] == {"scope": "/old"}
        assert doc["role_assignments"]["2"]["principal_id"] == "principal-a2"
