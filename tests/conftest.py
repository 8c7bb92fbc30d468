"""Test configuration — import the hyphenated agent directories under package aliases.

pytest loads this file before collecting test modules, so
``from agent_03_discovery_engine.algorithms...`` resolves in every test.
"""

import importlib.util
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent

# alias → (directory, subpackages registered eagerly)
_PACKAGES: dict[str, tuple[Path, tuple[str, ...]]] = {
    "agent_03_discovery_engine": (ROOT / "agent-03-discovery-engine", ("algorithms",)),
    "agent_05_discovery_api": (ROOT / "agent-05-discovery-api", ("src",)),
}


def _load_package(name: str, path: Path):
    if name in sys.modules:
        return sys.modules[name]
    spec = importlib.util.spec_from_file_location(
        name,
        path / "__init__.py",
        submodule_search_locations=[str(path)],
    )
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    spec.loader.exec_module(module)
    return module


for _alias, (_path, _subpackages) in _PACKAGES.items():
    _parent = _load_package(_alias, _path)
    for _sub in _subpackages:
        setattr(_parent, _sub, _load_package(f"{_alias}.{_sub}", _path / _sub))
