import logging
from typing import Any, Callable, Mapping, Optional

from pulumi import automation as auto

from infra.config import getter_from_mapping, load_stack_input
from provisioning.config_resolver import resolve_stack
from provisioning.models import StackSpec
from provisioning.settings import Settings

logger = logging.getLogger(__name__)


def summarize_changes(change_summary: Optional[Mapping[Any, int]]) -> dict[str, int]:
    """Reduce an engine change summary to the operations that change something."""
    changes: dict[str, int] = {}
    for op, count in (change_summary or {}).items():
        op_name = str(getattr(op, "value", op))
        if op_name != "same" and count:
            changes[op_name] = count
    return changes


class StackRunner:
    """Drive the Pulumi program for one stack through the Automation API.

    Every operation that can change infrastructure resolves and validates the
    stack's config first, so malformed parameters never reach the engine.
    """

    def __init__(
        self,
        settings: Settings,
        on_output: Optional[Callable[[str], None]] = None,
    ):
        self.settings = settings
        self._on_output = on_output
        self._stack: Optional[auto.Stack] = None

    @property
    def stack(self) -> auto.Stack:
        if self._stack is None:
            logger.info(
                "Selecting stack %s in %s",
                self.settings.pulumi_stack,
                self.settings.pulumi_work_dir,
            )
            self._stack = auto.create_or_select_stack(
                stack_name=self.settings.pulumi_stack,
                work_dir=self.settings.pulumi_work_dir,
                opts=auto.LocalWorkspaceOptions(env_vars=self._env_vars()),
            )
        return self._stack

    def _env_vars(self) -> dict[str, str]:
        env_vars = {
            "PULUMI_BACKEND_URL": self.settings.pulumi_backend_url,
            "PULUMI_ACCESS_TOKEN": self.settings.pulumi_access_token,
            "PULUMI_CONFIG_PASSPHRASE": self.settings.pulumi_config_passphrase,
            "AWS_PROFILE": self.settings.aws_profile,
        }
        return {key: value for key, value in env_vars.items() if value}

    def validate(self) -> StackSpec:
        """Resolve the stack's config and raise ConfigValidationError if it is invalid."""
        config = self.stack.get_all_config()
        values = {key: item.value for key, item in config.items()}
        project_get = getter_from_mapping(values, self.settings.pulumi_project)

        def get(key: str) -> Optional[str]:
            if key == "awsRegion":
                return project_get(key) or values.get("aws:region")
            return project_get(key)

        stack_input = load_stack_input(get)
        spec = resolve_stack(stack_input)
        if not stack_input.network.availability_zones:
            logger.warning(
                "Zones %s are assumed from the region name; 'up' uses the zones "
                "AWS reports as available, which may differ",
                ", ".join(spec.network.availability_zones),
            )
        logger.info(
            "Config for %s is valid: cluster %s (Kubernetes %s) across %d zones",
            self.settings.pulumi_stack,
            spec.cluster.name,
            spec.cluster.version,
            spec.network.zone_count,
        )
        return spec

    def preview(self) -> dict[str, int]:
        self.validate()
        result = self.stack.preview(on_output=self._on_output)
        return summarize_changes(result.change_summary)

    def up(self) -> dict[str, Any]:
        self.validate()
        result = self.stack.up(on_output=self._on_output)
        logger.info(
            "Update %s finished: %s",
            self.settings.pulumi_stack,
            result.summary.result,
        )
        return {key: item.value for key, item in result.outputs.items()}

    def check_drift(self) -> dict[str, int]:
        """Refresh state from AWS and report what an apply would change.

        An empty result means the deployed infrastructure matches the config.
        """
        self.validate()
        self.stack.refresh(on_output=self._on_output)
        result = self.stack.preview(on_output=self._on_output)
        changes = summarize_changes(result.change_summary)
        if changes:
            logger.warning("Stack %s has drifted: %s", self.settings.pulumi_stack, changes)
        else:
            logger.info("Stack %s has no pending changes", self.settings.pulumi_stack)
        return changes

    def outputs(self, show_secrets: bool = False) -> dict[str, Any]:
        outputs = self.stack.outputs()
        return {
            key: ("[secret]" if item.secret and not show_secrets else item.value)
            for key, item in outputs.items()
        }

    def kubeconfig(self) -> str:
        outputs = self.stack.outputs()
        item = outputs.get("kubeconfig")
        if item is None or not item.value:
            raise LookupError(
                f"Stack {self.settings.pulumi_stack} has no kubeconfig output; run 'up' first"
            )
        return item.value

    def destroy(self) -> None:
        """Tear the stack down, cluster strictly before the network.

        The cluster component and everything depending on it go first in a
        targeted destroy; the remaining resources follow in a full destroy.
        """
        outputs = self.stack.outputs()
        cluster_urn = outputs.get("cluster_urn")
        if cluster_urn is not None and cluster_urn.value:
            logger.info("Destroying cluster %s", cluster_urn.value)
            self.stack.destroy(
                target=[cluster_urn.value],
                target_dependents=True,
                on_output=self._on_output,
            )
        else:
            logger.info("No cluster recorded in stack %s", self.settings.pulumi_stack)

        logger.info("Destroying remaining resources in %s", self.settings.pulumi_stack)
        self.stack.destroy(on_output=self._on_output)
