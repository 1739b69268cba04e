"""Tests for the reconciliation engine."""

import logging

import pytest

from awx_controller.client import RemoteRejection, TransientError
from awx_controller.diagnostics import ErrorKind
from awx_controller.engine import PlanAction, ReconciliationEngine
from awx_controller.models import ManagedResource
from awx_controller.resource_types import CREDENTIAL, JOB_TEMPLATE
from awx_mock import MockAwxClient

DESIRED_TEMPLATE = {
    "name": "deploy-web",
    "job_type": "run",
    "inventory_id": "3",
    "project_id": 7,
    "playbook": "site.yml",
    "extra_vars": "env: prod\n",
}

DESIRED_CREDENTIAL = {
    "name": "ssh-deploy",
    "organization_id": 1,
    "credential_type_id": 1,
    "inputs": '{"username": "deploy", "password": "hunter2"}',
}


@pytest.fixture
def engine(awx: MockAwxClient) -> ReconciliationEngine:
    return ReconciliationEngine(awx, JOB_TEMPLATE)


class TestCreate:
    """Tests for ReconciliationEngine.create."""

    def test_create_reads_back_server_defaults(
        self, engine: ReconciliationEngine, awx: MockAwxClient
    ) -> None:
        """Test that create returns server-assigned values, not just echoed input."""
        result = engine.create(DESIRED_TEMPLATE)

        assert result.success
        assert result.id is not None
        assert result.remote_attributes["status"] == "never updated"
        assert result.remote_attributes["forks"] == 0
        assert result.remote_attributes["extra_vars"] == '{"env":"prod"}'
        assert [call[0] for call in awx.calls] == ["create", "read"]

    def test_create_payload_uses_wire_names(
        self, engine: ReconciliationEngine, awx: MockAwxClient
    ) -> None:
        """Test the payload sent on create."""
        engine.create(DESIRED_TEMPLATE)

        _, resource_type, payload = awx.calls_of("create")[0]
        assert resource_type == "job_template"
        assert payload == {
            "name": "deploy-web",
            "job_type": "run",
            "inventory": 3,
            "project": 7,
            "playbook": "site.yml",
            "extra_vars": '{"env":"prod"}',
        }

    def test_invalid_attributes_never_reach_remote(
        self, engine: ReconciliationEngine, awx: MockAwxClient
    ) -> None:
        """Test that validation errors fail before any remote call."""
        result = engine.create({**DESIRED_TEMPLATE, "inventory_id": "abc", "forks": "many"})

        assert result.id is None
        assert len(result.diagnostics.errors) == 2
        assert awx.calls == []

    def test_rejection_becomes_diagnostic(
        self, engine: ReconciliationEngine, awx: MockAwxClient
    ) -> None:
        """Test that a 4xx rejection is reported verbatim without retry."""
        awx.fail_next(
            "create",
            RemoteRejection("rejected", status_code=400, detail='{"playbook": ["not found"]}'),
        )

        result = engine.create(DESIRED_TEMPLATE)

        assert result.id is None
        assert result.diagnostics.has_kind(ErrorKind.REMOTE_REJECTION)
        assert '{"playbook": ["not found"]}' in result.diagnostics.errors[0].detail
        assert awx.call_count("create") == 1

    def test_transient_failure_not_retried(
        self, engine: ReconciliationEngine, awx: MockAwxClient
    ) -> None:
        """Test that create does not retry transient failures."""
        awx.fail_next("create", TransientError("503"))

        result = engine.create(DESIRED_TEMPLATE)

        assert result.diagnostics.has_kind(ErrorKind.TRANSIENT)
        assert awx.call_count("create") == 1

    def test_sensitive_values_not_logged(
        self, awx: MockAwxClient, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that credential inputs never reach log records."""
        engine = ReconciliationEngine(awx, CREDENTIAL)

        with caplog.at_level(logging.DEBUG):
            result = engine.create(DESIRED_CREDENTIAL)

        assert result.success
        for record in caplog.records:
            assert "hunter2" not in record.getMessage()
            assert "hunter2" not in repr(record.__dict__)

    def test_secrets_in_extra_vars_not_logged(
        self, engine: ReconciliationEngine, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test that password-like keys inside structured text are masked in logs."""
        desired = {**DESIRED_TEMPLATE, "extra_vars": "env: prod\npassword: s3cret\n"}

        with caplog.at_level(logging.DEBUG):
            result = engine.create(desired)

        assert result.success
        for record in caplog.records:
            assert "s3cret" not in repr(record.__dict__)

    def test_sensitive_value_kept_after_masked_read(self, awx: MockAwxClient) -> None:
        """Test that the masked secret on read does not replace the local value."""
        engine = ReconciliationEngine(awx, CREDENTIAL)

        result = engine.create(DESIRED_CREDENTIAL)

        assert result.remote_attributes["inputs"] == '{"password":"hunter2","username":"deploy"}'
        assert result.remote_attributes["kind"] == "ssh"


class TestRead:
    """Tests for ReconciliationEngine.read."""

    def test_not_found_is_distinct_signal(self, engine: ReconciliationEngine) -> None:
        """Test that a missing record is a non-fatal signal."""
        result = engine.read("999")

        assert result.not_found
        assert result.remote_attributes is None
        assert not result.diagnostics.has_errors
        assert result.diagnostics.has_kind(ErrorKind.NOT_FOUND)

    def test_invalid_identifier(self, engine: ReconciliationEngine, awx: MockAwxClient) -> None:
        """Test that an unparsable id is a validation error, not an exception."""
        result = engine.read("abc")

        assert not result.not_found
        assert result.diagnostics.has_kind(ErrorKind.VALIDATION)
        assert awx.calls == []

    def test_transient_read(self, engine: ReconciliationEngine, awx: MockAwxClient) -> None:
        """Test that a failed read is an error without retry."""
        awx.fail_next("read", TransientError("timeout"))

        result = engine.read("1")

        assert result.diagnostics.has_kind(ErrorKind.TRANSIENT)
        assert awx.call_count("read") == 1


class TestUpdate:
    """Tests for ReconciliationEngine.update."""

    def test_empty_change_set_makes_no_calls(
        self, engine: ReconciliationEngine, awx: MockAwxClient
    ) -> None:
        """Test that an empty change set is a guaranteed no-op."""
        from awx_controller.change_tracker import FieldChangeSet

        diagnostics = engine.update("1", FieldChangeSet(), DESIRED_TEMPLATE)

        assert not diagnostics
        assert awx.calls == []

    def test_sends_only_changed_fields(
        self, engine: ReconciliationEngine, awx: MockAwxClient
    ) -> None:
        """Test that update transmits exactly the changed fields."""
        from awx_controller.change_tracker import FieldChangeSet

        created = engine.create(DESIRED_TEMPLATE)
        assert created.id is not None
        desired = {**DESIRED_TEMPLATE, "forks": 10, "playbook": "other.yml"}

        diagnostics = engine.update(created.id, FieldChangeSet(("playbook", "forks")), desired)

        assert not diagnostics.has_errors
        _, _, _, payload = awx.calls_of("update")[0]
        assert payload == {"playbook": "other.yml", "forks": 10}

    def test_missing_record_not_written(
        self, engine: ReconciliationEngine, awx: MockAwxClient
    ) -> None:
        """Test that update verifies existence before writing."""
        from awx_controller.change_tracker import FieldChangeSet

        diagnostics = engine.update("999", FieldChangeSet(("forks",)), {**DESIRED_TEMPLATE, "forks": 1})

        assert diagnostics.has_errors
        assert diagnostics.has_kind(ErrorKind.NOT_FOUND)
        assert awx.call_count("update") == 0


class TestDelete:
    """Tests for ReconciliationEngine.delete."""

    def test_delete_twice_succeeds(self, engine: ReconciliationEngine, awx: MockAwxClient) -> None:
        """Test that deleting an already deleted record is success."""
        created = engine.create(DESIRED_TEMPLATE)
        assert created.id is not None

        first = engine.delete(created.id)
        second = engine.delete(created.id)

        assert not first.has_errors
        assert not second.has_errors
        assert awx.state.record_count("job_template") == 0

    def test_delete_rejected(self, engine: ReconciliationEngine, awx: MockAwxClient) -> None:
        """Test that a refused delete is reported."""
        awx.fail_next("delete", RemoteRejection("409", status_code=409, detail="in use"))

        diagnostics = engine.delete("1")

        assert diagnostics.has_kind(ErrorKind.REMOTE_REJECTION)

    def test_delete_invalid_identifier(self, engine: ReconciliationEngine) -> None:
        """Test that delete validates the identifier."""
        assert engine.delete("").has_kind(ErrorKind.VALIDATION)


class TestReconcile:
    """Tests for plan and reconcile."""

    def _resource(self, **overrides: object) -> ManagedResource:
        return ManagedResource(
            name="web",
            descriptor=JOB_TEMPLATE,
            desired_attributes={**DESIRED_TEMPLATE, **overrides},
        )

    def test_plan_create_without_id(self, engine: ReconciliationEngine) -> None:
        """Test that a resource without id plans a create."""
        plan = engine.plan(self._resource())

        assert plan.action is PlanAction.CREATE
        assert not plan.pruned

    def test_reconcile_creates_then_noop(
        self, engine: ReconciliationEngine, awx: MockAwxClient
    ) -> None:
        """Test that a second reconcile of unchanged declarations does nothing."""
        resource = self._resource()

        first = engine.reconcile(resource)
        second = engine.reconcile(resource)

        assert first.action is PlanAction.CREATE
        assert resource.id is not None
        assert second.action is PlanAction.NOOP
        assert awx.call_count("create") == 1
        assert awx.call_count("update") == 0

    def test_reconcile_updates_drift(
        self, engine: ReconciliationEngine, awx: MockAwxClient
    ) -> None:
        """Test that remote drift is corrected with a partial update."""
        resource = self._resource()
        engine.reconcile(resource)
        assert resource.id is not None
        awx.state.update_record("job_template", int(resource.id), {"playbook": "drifted.yml"})

        result = engine.reconcile(resource)

        assert result.action is PlanAction.UPDATE
        assert list(result.change_set) == ["playbook"]
        assert resource.remote_attributes["playbook"] == "site.yml"

    def test_force_new_field_replaces(self, awx: MockAwxClient) -> None:
        """Test that only a change to a replace-only field plans a replacement."""
        descriptor = JOB_TEMPLATE.model_copy(
            update={
                "fields": tuple(
                    spec.model_copy(update={"force_new": spec.name == "playbook"})
                    for spec in JOB_TEMPLATE.fields
                )
            }
        )
        engine = ReconciliationEngine(awx, descriptor)
        resource = ManagedResource(
            name="web", descriptor=descriptor, desired_attributes=dict(DESIRED_TEMPLATE)
        )
        engine.reconcile(resource)

        resource.desired_attributes["limit"] = "host-a"
        updated = engine.plan(resource)
        resource.desired_attributes["playbook"] = "other.yml"
        replaced = engine.plan(resource)

        assert descriptor.force_new_names == ("playbook",)
        assert updated.action is PlanAction.UPDATE
        assert replaced.action is PlanAction.REPLACE
        assert list(replaced.change_set) == ["playbook", "limit"]

    def test_reformatted_extra_vars_is_noop(
        self, engine: ReconciliationEngine, awx: MockAwxClient
    ) -> None:
        """Test that rewriting extra_vars as JSON does not cause an update."""
        resource = self._resource()
        engine.reconcile(resource)

        resource.desired_attributes["extra_vars"] = '{ "env" : "prod" }'
        result = engine.reconcile(resource)

        assert result.action is PlanAction.NOOP

    def test_deleted_remotely_is_recreated(
        self, engine: ReconciliationEngine, awx: MockAwxClient
    ) -> None:
        """Test that a record deleted out of band is pruned and recreated."""
        resource = self._resource()
        engine.reconcile(resource)
        old_id = resource.id
        assert old_id is not None
        awx.state.delete_record("job_template", int(old_id))

        result = engine.reconcile(resource)

        assert result.action is PlanAction.CREATE
        assert result.pruned
        assert resource.id is not None
        assert resource.id != old_id
        assert result.success

    def test_invalid_declaration_is_not_applied(
        self, engine: ReconciliationEngine, awx: MockAwxClient
    ) -> None:
        """Test that validation errors stop reconciliation."""
        result = engine.reconcile(self._resource(job_type="deploy"))

        assert not result.success
        assert awx.calls == []

    def test_destroy_clears_id(self, engine: ReconciliationEngine, awx: MockAwxClient) -> None:
        """Test that destroy deletes the record and forgets the id."""
        resource = self._resource()
        engine.reconcile(resource)

        diagnostics = engine.destroy(resource)

        assert not diagnostics.has_errors
        assert resource.id is None
        assert resource.remote_attributes == {}
