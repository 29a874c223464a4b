from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List

import yaml


class PolicySource(ABC):
    """
    Read access to the Gatekeeper objects of one cluster.
    Objects are returned as plain dicts in their Kubernetes JSON shape.
    """

    @abstractmethod
    def list_constraint_templates(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    def list_constraints(self, template: Dict[str, Any]) -> List[Dict[str, Any]]:
        pass


class YAMLPolicySource(PolicySource):
    """
    Reads object lists exported with `kubectl get ... -o yaml`:

        <directory>/constrainttemplates.yaml
        <directory>/<template name>.yaml   (constraints of that template)
    """

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def list_constraint_templates(self) -> List[Dict[str, Any]]:
        return self._read_items("constrainttemplates.yaml")

    def list_constraints(self, template: Dict[str, Any]) -> List[Dict[str, Any]]:
        name = (template.get("metadata") or {}).get("name", "")
        path = self.directory / f"{name}.yaml"
        if not path.exists():
            return []
        return self._read_items(path.name)

    def _read_items(self, filename: str) -> List[Dict[str, Any]]:
        path = self.directory / filename
        with open(path, "r", encoding="utf-8") as f:
            try:
                document = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"{path}: cannot parse YAML: {e}") from e

        if not isinstance(document, dict):
            raise ValueError(f"{path}: expected a list object with `items`")
        return list(document.get("items") or [])
