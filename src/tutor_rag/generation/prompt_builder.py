"""tutor_rag.generation.prompt_builder

Named Jinja2 prompts for reranking and answer generation.

Prompt files are JSON holding one template object or a list of them. The
package ships ``tutor_rag/prompts/default.json`` with ``rerank_score`` and
``rag_answer``; deployments may layer their own files on top, and a later
file wins for a repeated name.

Classes
-------
PromptTemplate
    One named prompt.
PromptBuilder
    Name-to-template registry used by the pipeline.
"""

from __future__ import annotations

import json
import warnings
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from jinja2 import Template

DEFAULT_PROMPT_SOURCE = "pkg:tutor_rag.prompts:default.json"


class PromptTemplate:
    """One named prompt.

    The rendered text is the system block, then each few-shot example's
    ``content``, then the user block, one per line. Empty parts are left out.
    """

    def __init__(self,
                 name: str,
                 system: Optional[str] = None,
                 few_shot: Optional[List[Dict[str, str]]] = None,
                 user: str = ""
        ):
        self.name = name
        self.system = system
        self.few_shot = few_shot or []
        self.user = user
        self._template: Template | None = None

    def render(self, **kwargs) -> str:
        if self._template is None:
            parts = [self.system] if self.system else []
            parts.extend(example.get("content", "") for example in self.few_shot)
            if self.user:
                parts.append(self.user)
            self._template = Template("\n".join(parts))
        return self._template.render(**kwargs)


class PromptBuilder:
    """Name-to-template registry used by the pipeline."""

    def __init__(self):
        self.templates: Dict[str, PromptTemplate] = {}

    @classmethod
    def from_sources(
            cls,
            sources: Iterable[str] | None = None,
            base_dir: Optional[Path] = None,
        ) -> "PromptBuilder":
        """Build a registry from ``sources``, in order.

        Parameters
        ----------
        sources : Iterable[str] or None, optional
            Prompt sources as accepted by :meth:`register_from_source`. When
            empty, only the packaged prompts are loaded.
        base_dir : Path or None, optional
            Directory that relative file sources are resolved against.
        """
        builder = cls()
        for source in sources or [DEFAULT_PROMPT_SOURCE]:
            builder.register_from_source(source, base_dir=base_dir)
        return builder

    def register_from_dict(self, data: Dict[str, Any]) -> None:
        """Add one template object; an existing name is replaced with a warning.

        Raises
        ------
        KeyError
            If ``data`` has no ``"name"``.
        TypeError
            If ``"name"`` is not a string or ``"few_shot"`` is not a list.
        ValueError
            If ``"name"`` is blank.
        """
        if "name" not in data:
            raise KeyError("Template definition missing required key: 'name'")
        name = data["name"]
        if not isinstance(name, str):
            raise TypeError(f"Template 'name' must be a str, got {type(name)!r}")
        if not name.strip():
            raise ValueError("Template 'name' must be a non-empty string")

        few_shot = data.get("few_shot")
        if few_shot is not None and not isinstance(few_shot, list):
            raise TypeError(f"Template 'few_shot' must be a list or None, got {type(few_shot)!r}")

        if name in self.templates:
            warnings.warn(f"Overwriting existing prompt template: {name}")
        self.templates[name] = PromptTemplate(
            name=name,
            system=data.get("system"),
            few_shot=few_shot,
            user=data.get("user") or "",
        )

    def register_from_source(self, source: str, base_dir: Optional[Path] = None) -> List[str]:
        """Load every template in ``source`` and return their names.

        ``source`` is ``pkg:<package>:<resource>`` for a packaged file,
        ``file:<path>`` or a bare path for a file on disk.

        Raises
        ------
        FileNotFoundError
            If the file or resource is missing.
        ValueError
            If the source is malformed or does not name a ``.json`` file.
        """
        if not isinstance(source, str):
            raise TypeError(f"source must be a str, got {type(source)!r}")

        if source.startswith("pkg:"):
            package, sep, resource_path = source[len("pkg:"):].partition(":")
            if not sep:
                raise ValueError("pkg: sources must be of the form 'pkg:<package>:<resource_path>'")
            data, origin = self._read_resource(package.strip(), resource_path.strip())
        else:
            path = source[len("file:"):].strip() if source.startswith("file:") else source
            data, origin = self._read_file(Path(path), base_dir)

        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise TypeError(f"Prompt source {origin} must contain an object or list of objects, got {type(data)!r}")

        names: List[str] = []
        for item in data:
            if not isinstance(item, dict):
                raise TypeError(f"Template list items must be dicts, got {type(item)!r}")
            self.register_from_dict(item)
            names.append(item["name"])
        return names

    @staticmethod
    def _read_file(path: Path, base_dir: Optional[Path]) -> tuple[Any, str]:
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path
        path = path.resolve()
        if not path.exists():
            raise FileNotFoundError(f"Prompt file not found: {path}")
        if path.suffix.lower() != ".json":
            raise ValueError(f"Unsupported file type: {path.suffix}")
        with path.open("r", encoding="utf-8") as f:
            return json.load(f), str(path)

    @staticmethod
    def _read_resource(package: str, resource_path: str) -> tuple[Any, str]:
        origin = f"pkg:{package}:{resource_path}"
        if not resource_path.lower().endswith(".json"):
            raise ValueError(f"Unsupported resource type: {resource_path}")
        try:
            res = resources.files(package).joinpath(resource_path)
        except ModuleNotFoundError as e:
            raise FileNotFoundError(f"Prompt package not found: {package}") from e
        if not res.is_file():
            raise FileNotFoundError(f"Prompt resource not found: {origin}")
        return json.loads(res.read_text(encoding="utf-8")), origin

    def list_prompts(self) -> List[str]:
        return sorted(self.templates)

    def get_template(self, name: str) -> PromptTemplate:
        """Return the template called ``name``; raise ``KeyError`` if unknown."""
        if name not in self.templates:
            available = ", ".join(self.list_prompts())
            raise KeyError(f"No template registered under name: {name}. Available: [{available}]")
        return self.templates[name]

    def build(self, name: str, **kwargs) -> str:
        """Render ``name`` with ``kwargs`` as template variables."""
        return self.get_template(name).render(**kwargs)


__all__ = [
    "DEFAULT_PROMPT_SOURCE",
    "PromptTemplate",
    "PromptBuilder",
]
