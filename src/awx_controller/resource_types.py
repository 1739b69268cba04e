"""Descriptors for the AWX resource types this controller manages.

Each declaration type maps to a TypeDescriptor listing its attributes in
the order payloads are built. Attribute names follow the declaration
vocabulary (``inventory_id``); ``wire_name`` gives the AWX field name
(``inventory``) where the two differ.
"""

from __future__ import annotations

from .models import FieldMode, FieldSpec, FieldType, TypeDescriptor

JOB_TYPES = ("run", "check", "scan")
VERBOSITY_LEVELS = (0, 1, 2, 3, 4, 5)

# Prompt-on-launch switches of a job template, in AWX field order
ASK_ON_LAUNCH_FLAGS = (
    "ask_scm_branch_on_launch",
    "ask_diff_mode_on_launch",
    "ask_variables_on_launch",
    "ask_limit_on_launch",
    "ask_tags_on_launch",
    "ask_skip_tags_on_launch",
    "ask_job_type_on_launch",
    "ask_verbosity_on_launch",
    "ask_inventory_on_launch",
    "ask_credential_on_launch",
    "ask_execution_environment_on_launch",
    "ask_labels_on_launch",
    "ask_forks_on_launch",
    "ask_job_slice_count_on_launch",
    "ask_timeout_on_launch",
    "ask_instance_groups_on_launch",
)


def _string(name: str, mode: FieldMode = FieldMode.OPTIONAL, **kwargs: object) -> FieldSpec:
    return FieldSpec(name=name, type=FieldType.STRING, mode=mode, **kwargs)


def _integer(name: str, mode: FieldMode = FieldMode.OPTIONAL, **kwargs: object) -> FieldSpec:
    return FieldSpec(name=name, type=FieldType.INTEGER, mode=mode, **kwargs)


def _boolean(name: str, mode: FieldMode = FieldMode.OPTIONAL, **kwargs: object) -> FieldSpec:
    return FieldSpec(name=name, type=FieldType.BOOLEAN, mode=mode, **kwargs)


# =============================================================================
# Job template
# =============================================================================

JOB_TEMPLATE = TypeDescriptor(
    kind="job_template",
    resource_type="job_template",
    description="Playbook run definition: inventory, project, playbook and launch options",
    fields=(
        _string("name", FieldMode.REQUIRED),
        _string("description"),
        _string("job_type", FieldMode.REQUIRED, choices=JOB_TYPES),
        _string("inventory_id", FieldMode.REQUIRED, wire_name="inventory", numeric_id=True),
        _integer("project_id", FieldMode.REQUIRED, wire_name="project"),
        _string("playbook", FieldMode.REQUIRED),
        _string("scm_branch"),
        _integer("forks"),
        _string("limit"),
        _integer("verbosity", choices=VERBOSITY_LEVELS),
        FieldSpec(name="extra_vars", type=FieldType.STRUCTURED),
        _string("job_tags"),
        _boolean("force_handlers"),
        _string("skip_tags"),
        _string("start_at_task"),
        _integer("timeout"),
        _boolean("use_fact_cache"),
        _integer("organization_id", wire_name="organization"),
        _integer("execution_environment_id", wire_name="execution_environment"),
        _string("host_config_key"),
        *(_boolean(flag) for flag in ASK_ON_LAUNCH_FLAGS),
        _boolean("survey_enabled"),
        _boolean("become_enabled"),
        _boolean("diff_mode"),
        _boolean("allow_simultaneous"),
        _string("custom_virtualenv"),
        _integer("job_slice_count"),
        _string("webhook_service"),
        _integer("webhook_credential_id", wire_name="webhook_credential"),
        _boolean("prevent_instance_group_fallback"),
        _integer("credential_id", wire_name="credential"),
        _string("status", FieldMode.COMPUTED),
    ),
)


# =============================================================================
# Credential
# =============================================================================

CREDENTIAL = TypeDescriptor(
    kind="credential",
    resource_type="credential",
    description="Secret material of a given credential type, owned by an organization",
    fields=(
        _string("name", FieldMode.REQUIRED),
        _string("description"),
        _integer("organization_id", FieldMode.REQUIRED, wire_name="organization"),
        _integer("credential_type_id", FieldMode.REQUIRED, wire_name="credential_type"),
        FieldSpec(
            name="inputs",
            type=FieldType.STRUCTURED,
            mode=FieldMode.REQUIRED,
            sensitive=True,
            description="Credential type inputs as JSON or YAML",
        ),
        _string("kind", FieldMode.COMPUTED),
    ),
)


# =============================================================================
# Job template launch
# =============================================================================
#
# A launch is a one-shot action modelled as a resource: creating it starts a
# job, reading it reads the job record, deleting it only forgets the job
# locally. Every attribute forces a new launch when changed.

JOB_TEMPLATE_LAUNCH = TypeDescriptor(
    kind="job_template_launch",
    resource_type="job",
    description="Launch of a job template, optionally waiting for the job to finish",
    fields=(
        _integer("job_template_id", FieldMode.REQUIRED, force_new=True, local_only=True),
        _boolean("monitor_for_completion", force_new=True, local_only=True),
        _string("job_type", FieldMode.OPTIONAL_COMPUTED, force_new=True, choices=JOB_TYPES),
        _string("playbook", FieldMode.OPTIONAL_COMPUTED, force_new=True),
        _integer("forks", FieldMode.OPTIONAL_COMPUTED, force_new=True),
        _string("limit", FieldMode.OPTIONAL_COMPUTED, force_new=True),
        _integer(
            "verbosity", FieldMode.OPTIONAL_COMPUTED, force_new=True, choices=VERBOSITY_LEVELS
        ),
        FieldSpec(
            name="extra_vars",
            type=FieldType.STRUCTURED,
            mode=FieldMode.OPTIONAL_COMPUTED,
            force_new=True,
        ),
        _string("job_tags", FieldMode.OPTIONAL_COMPUTED, force_new=True),
        _string("skip_tags", FieldMode.OPTIONAL_COMPUTED, force_new=True),
        _integer("timeout", FieldMode.OPTIONAL_COMPUTED, force_new=True),
        _string("scm_revision", FieldMode.OPTIONAL_COMPUTED, force_new=True),
        _boolean("diff_mode", FieldMode.OPTIONAL_COMPUTED, force_new=True),
        FieldSpec(
            name="credential_ids",
            type=FieldType.INTEGER_SET,
            mode=FieldMode.OPTIONAL_COMPUTED,
            wire_name="credentials",
            force_new=True,
        ),
        _integer(
            "execution_environment_id",
            FieldMode.OPTIONAL_COMPUTED,
            wire_name="execution_environment",
            force_new=True,
        ),
        _string("name", FieldMode.COMPUTED),
        _string("status", FieldMode.COMPUTED),
        _boolean("failed", FieldMode.COMPUTED),
    ),
)


RESOURCE_TYPES: dict[str, TypeDescriptor] = {
    descriptor.kind: descriptor for descriptor in (JOB_TEMPLATE, CREDENTIAL, JOB_TEMPLATE_LAUNCH)
}


def get_descriptor(kind: str) -> TypeDescriptor:
    """Get the descriptor for a declaration type.

    Raises:
        ValueError: If the type is not supported.
    """
    descriptor = RESOURCE_TYPES.get(kind)
    if descriptor is None:
        valid = sorted(RESOURCE_TYPES)
        raise ValueError(f"Unknown resource type '{kind}'. Valid types: {valid}")
    return descriptor
