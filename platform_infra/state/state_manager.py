"""
Descriptor state management.

Tracks the last synthesised descriptor and the outputs the provisioning
engine reported for it, so downstream tooling can pick them up.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from platform_infra.graph.declarations import DeclarationGraph

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = ".deployment_state.json"

# Stack output key -> environment variable written by export_env_file
ENV_EXPORTS = {
    "vpcId": "VPC_ID",
    "ecrRepositoryUrl": "ECR_REPOSITORY_URL",
    "ecsClusterArn": "ECS_CLUSTER_ARN",
    "instancePublicIp": "INSTANCE_PUBLIC_IP",
    "loadBalancerDnsName": "LOAD_BALANCER_DNS_NAME",
    "databaseEndpoint": "DATABASE_ENDPOINT",
    "storageBucketName": "STORAGE_BUCKET_NAME",
    "serverImage": "SERVER_IMAGE",
    "apiUrl": "API_URL",
    "webUrl": "WEB_URL",
    "adminUrl": "ADMIN_URL",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StateManager:
    """Manages descriptor state between synth and apply."""

    def __init__(self, state_file: str = DEFAULT_STATE_FILE):
        self.state_file = state_file
        self.state = self._load_state()

    def _load_state(self) -> Dict[str, Any]:
        """Load descriptor state from file."""
        if os.path.exists(self.state_file):
            try:
                with open(self.state_file, 'r') as f:
                    return json.load(f)
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Ignoring unreadable state file {self.state_file}: {e}")

        return {
            "project": None,
            "topology": None,
            "descriptor_digest": None,
            "server_image": None,
            "synthesized_at": None,
            "last_updated": None,
            "outputs": {},
            "status": "not_synthesized",
        }

    def save_state(self):
        """Save current state to file."""
        self.state["last_updated"] = _now()
        with open(self.state_file, 'w') as f:
            json.dump(self.state, f, indent=2, sort_keys=True)

    def record_synthesis(self, graph: DeclarationGraph, server_image: str):
        """Record a freshly synthesised descriptor; previous outputs are dropped."""
        self.state.update({
            "project": graph.project,
            "topology": graph.topology,
            "descriptor_digest": graph.digest(),
            "server_image": server_image,
            "synthesized_at": _now(),
            "outputs": {},
            "status": "synthesized",
        })
        self.save_state()
        logger.info(f"Recorded {graph.topology} descriptor {self.state['descriptor_digest'][:12]}")

    def record_outputs(self, outputs: Dict[str, Any]):
        """Record resolved stack outputs reported after apply."""
        self.state.setdefault("outputs", {}).update(outputs)
        self.state["status"] = "applied"
        self.save_state()
        logger.info(f"Recorded {len(outputs)} stack outputs")

    def get_output(self, key: str, default: Any = None) -> Any:
        return self.state.get("outputs", {}).get(key, default)

    def status(self) -> Dict[str, Any]:
        """Summary of the recorded state."""
        return {
            "status": self.state.get("status", "unknown"),
            "project": self.state.get("project"),
            "topology": self.state.get("topology"),
            "descriptor_digest": self.state.get("descriptor_digest"),
            "server_image": self.state.get("server_image"),
            "synthesized_at": self.state.get("synthesized_at"),
            "last_updated": self.state.get("last_updated"),
            "outputs": len(self.state.get("outputs", {})),
        }

    def clear_state(self):
        """Clear all descriptor state."""
        if os.path.exists(self.state_file):
            os.remove(self.state_file)
        self.state = self._load_state()

    def export_env_file(self, env_file: str = ".env.platform") -> Optional[str]:
        """Export resolved outputs to an environment file.

        Returns:
            Path written, or None when there are no resolved outputs yet
        """
        outputs = self.state.get("outputs", {})
        exported = [(ENV_EXPORTS[key], outputs[key]) for key in ENV_EXPORTS
                    if isinstance(outputs.get(key), (str, int, float))]
        if not exported:
            logger.warning("No resolved outputs to export; run `outputs` after apply first")
            return None

        env_lines = [
            "# Platform deployment outputs",
            f"# Generated on {_now()}",
            f"# Project: {self.state.get('project', 'unknown')} ({self.state.get('topology', 'unknown')})",
            f"# Descriptor: {self.state.get('descriptor_digest', 'unknown')}",
            "",
            *[f"{name}={value}" for name, value in exported],
            "",
        ]

        with open(env_file, 'w') as f:
            f.write('\n'.join(env_lines))
        logger.info(f"Outputs exported to {env_file}")
        return env_file
