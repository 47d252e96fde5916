# loader.py
from __future__ import annotations

from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .errors import ConfigError
from .model import (
    OPERATING_SYSTEMS,
    SECTIONS,
    Block,
    BlockConfig,
    Command,
    Config,
    ExecutionPolicy,
    GlobalSettings,
    Invoke,
    OSBlock,
    Section,
    Step,
)

DEFAULT_CONFIG_FILE = "ZMake.yml"

TOP_LEVEL_KEYS = ("tasks", "blocks", "config")
BODY_KEYS = ("steps", "config")
BLOCK_PREFIX = "block:"


# ----------------------------------------------------------------------
# YAML reading
# ----------------------------------------------------------------------

class _Pairs(dict):
    """
    A mapping that also remembers every (key, value) pair in file order,
    so duplicate keys can still be detected after parsing.
    """
    pairs: List[Tuple[Any, Any]]


class _PairsLoader(yaml.SafeLoader):
    pass


_MERGE_TAG = "tag:yaml.org,2002:merge"


def _construct_pairs(loader: _PairsLoader, node: yaml.MappingNode) -> _Pairs:
    # flatten_mapping puts the keys pulled in by `<<` ahead of the node's own
    # keys. Only the node's own keys are checked for duplicates; a merged key
    # is kept only when the node does not define it itself.
    own_count = sum(1 for k, _ in node.value if k.tag != _MERGE_TAG)
    loader.flatten_mapping(node)
    split = len(node.value) - own_count

    own = [
        (loader.construct_object(k, deep=True), loader.construct_object(v, deep=True))
        for k, v in node.value[split:]
    ]
    own_keys = {k for k, _ in own}
    merged: Dict[Any, Any] = {}
    for k, v in node.value[:split]:
        key = loader.construct_object(k, deep=True)
        if key not in own_keys:
            merged[key] = loader.construct_object(v, deep=True)

    pairs = list(merged.items()) + own
    out = _Pairs(pairs)
    out.pairs = pairs
    return out


_PairsLoader.add_constructor(yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_pairs)


def _pairs_of(mapping: Mapping) -> List[Tuple[Any, Any]]:
    return list(getattr(mapping, "pairs", None) or mapping.items())


def _duplicates(mapping: Mapping) -> List[str]:
    names = [str(k) for k, _ in _pairs_of(mapping)]
    return sorted({n for n in names if names.count(n) > 1})


def load_config(path: str | Path) -> Config:
    """
    Load and validate a configuration file.

    Raises:
      ConfigError for unreadable files, invalid YAML and any structural
      violation. Nothing is executed before this returns.
    """
    cfg_path = Path(path).expanduser()
    try:
        text = cfg_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read config file {cfg_path}: {e.strerror or e}") from e

    try:
        data = yaml.load(text, Loader=_PairsLoader)
    except (yaml.YAMLError, TypeError) as e:
        raise ConfigError(f"failed to parse YAML config {cfg_path}: {e}") from e

    return load_config_data(data)


# ----------------------------------------------------------------------
# Normalization
# ----------------------------------------------------------------------

def load_config_data(data: Any) -> Config:
    """Normalize an already parsed document into a Config."""
    if data is None:
        return Config()
    if not isinstance(data, Mapping):
        raise ConfigError("config root must be a mapping")

    dupes = _duplicates(data)
    if dupes:
        raise ConfigError(f"duplicate top-level keys: {dupes}")
    unknown = sorted(str(k) for k in data if k not in TOP_LEVEL_KEYS)
    if unknown:
        raise ConfigError(f"unknown top-level keys: {unknown}. Allowed: {list(TOP_LEVEL_KEYS)}")

    sections = _parse_tasks(data.get("tasks"))
    blocks = _parse_blocks(data.get("blocks"))
    settings = _parse_settings(data.get("config"))

    return Config(sections=MappingProxyType(sections), blocks=tuple(blocks), settings=settings)


def _parse_tasks(raw: Any) -> Dict[str, Section]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ConfigError("'tasks' must be a mapping of section name -> platforms")

    dupes = _duplicates(raw)
    if dupes:
        raise ConfigError(f"sections defined more than once: {dupes}")

    by_name: Dict[str, Section] = {}
    for name, platforms in _pairs_of(raw):
        if name not in SECTIONS:
            raise ConfigError(f"unknown section '{name}'. Known sections: {list(SECTIONS)}")
        by_name[name] = Section(name=name, platforms=_parse_platforms(platforms, f"tasks.{name}"))

    # canonical order, not file order
    return {name: by_name[name] for name in SECTIONS if name in by_name}


def _parse_platforms(raw: Any, where: str) -> Mapping[str, OSBlock]:
    if raw is None:
        return MappingProxyType({})
    if not isinstance(raw, Mapping):
        raise ConfigError(f"{where}: expected a mapping of OS name -> {{steps, config}}")

    dupes = _duplicates(raw)
    if dupes:
        raise ConfigError(f"{where}: OS defined more than once: {dupes}")

    out: Dict[str, OSBlock] = {}
    for os_name, body in _pairs_of(raw):
        if os_name not in OPERATING_SYSTEMS:
            raise ConfigError(
                f"{where}: unknown OS '{os_name}'. Known: {list(OPERATING_SYSTEMS)}"
            )
        out[os_name] = _parse_body(body, f"{where}.{os_name}")
    return MappingProxyType(out)


def _parse_body(raw: Any, where: str) -> OSBlock:
    if raw is None:
        return OSBlock()
    if not isinstance(raw, Mapping):
        raise ConfigError(f"{where}: expected a mapping with 'steps' and optional 'config'")

    unknown = sorted(str(k) for k in raw if k not in BODY_KEYS)
    if unknown:
        raise ConfigError(f"{where}: unknown keys {unknown}. Allowed: {list(BODY_KEYS)}")

    steps_raw = raw.get("steps")
    if steps_raw is None:
        steps_raw = []
    if not isinstance(steps_raw, list):
        raise ConfigError(f"{where}.steps must be a list")

    steps = tuple(_parse_step(s, f"{where}.steps[{i}]") for i, s in enumerate(steps_raw))
    return OSBlock(steps=steps, config=_parse_block_config(raw.get("config"), f"{where}.config"))


def _parse_step(raw: Any, where: str) -> Step:
    if isinstance(raw, Mapping):
        if len(raw) != 1 or "block" not in raw:
            raise ConfigError(f"{where}: a mapping step must be exactly {{block: NAME}}")
        return _invoke(raw["block"], where)

    if not isinstance(raw, str):
        raise ConfigError(f"{where}: step must be a string, got {type(raw).__name__}")
    text = raw.strip()
    if not text:
        raise ConfigError(f"{where}: empty step")
    if text.startswith(BLOCK_PREFIX):
        return _invoke(text[len(BLOCK_PREFIX):], where)
    return Command(text)


def _invoke(name: Any, where: str) -> Invoke:
    if not isinstance(name, str) or not name.strip():
        raise ConfigError(f"{where}: block reference needs a name")
    return Invoke(name.strip())


def _parse_block_config(raw: Any, where: str) -> BlockConfig:
    if raw is None:
        return BlockConfig()
    if not isinstance(raw, Mapping):
        raise ConfigError(f"{where} must be a mapping")

    unknown = sorted(str(k) for k in raw if k not in ("execution_policy", "env"))
    if unknown:
        raise ConfigError(f"{where}: unknown keys {unknown}")

    return BlockConfig(
        policy=_parse_policy(raw.get("execution_policy"), where),
        env=_parse_env(raw.get("env"), f"{where}.env"),
    )


def _parse_policy(raw: Any, where: str) -> Optional[ExecutionPolicy]:
    if raw is None:
        return None
    try:
        return ExecutionPolicy.parse(raw)
    except ValueError:
        raise ConfigError(
            f"{where}: invalid execution_policy {raw!r}. Use 'fail_fast' or 'carry_forward'"
        ) from None


def _env_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _parse_env(raw: Any, where: str) -> Mapping[str, str]:
    if raw is None:
        return MappingProxyType({})
    if not isinstance(raw, Mapping):
        raise ConfigError(f"{where} must be a mapping of KEY: VALUE")

    env: Dict[str, str] = {}
    # duplicate keys in one scope: last write wins
    for key, value in _pairs_of(raw):
        if isinstance(value, (Mapping, list)):
            raise ConfigError(f"{where}.{key}: value must be a scalar")
        env[str(key)] = _env_value(value)
    return MappingProxyType(env)


def _parse_blocks(raw: Any) -> List[Block]:
    """
    Returns blocks in file order, duplicates included; the registry
    rejects duplicate names.
    """
    if raw is None:
        return []
    if not isinstance(raw, Mapping):
        raise ConfigError("'blocks' must be a mapping of block name -> {steps, config}")

    dupes = _duplicates(raw)
    if dupes:
        raise ConfigError(f"duplicate block names: {dupes}")

    blocks: List[Block] = []
    for name, body in _pairs_of(raw):
        name = str(name)
        where = f"blocks.{name}"
        if name in SECTIONS:
            raise ConfigError(f"block name '{name}' conflicts with reserved section name")
        if name in OPERATING_SYSTEMS:
            raise ConfigError(f"block name '{name}' conflicts with reserved operating system name")

        if isinstance(body, Mapping) and any(k in OPERATING_SYSTEMS for k in body):
            if any(k in BODY_KEYS for k in body):
                raise ConfigError(f"{where}: cannot mix OS keys with 'steps'/'config'")
            blocks.append(Block(name=name, platforms=_parse_platforms(body, where)))
        else:
            plain = _parse_body(body, where)
            blocks.append(Block.simple(name, plain.steps, plain.config))
    return blocks


def _name_list(raw: Any) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        return [raw]
    if not isinstance(raw, list):
        raise ConfigError("config.skip_sections must be a list of section names")
    return [str(n) for n in raw]


def _parse_settings(raw: Any) -> GlobalSettings:
    if raw is None:
        return GlobalSettings()
    if not isinstance(raw, Mapping):
        raise ConfigError("'config' must be a mapping")

    allowed = ("skip_sections", "banned_sections", "execution_policy", "env")
    unknown = sorted(str(k) for k in raw if k not in allowed)
    if unknown:
        raise ConfigError(f"config: unknown keys {unknown}. Allowed: {list(allowed)}")

    # Backwards-compatible alias: banned_sections
    skip = _name_list(raw.get("skip_sections")) + _name_list(raw.get("banned_sections"))
    for name in skip:
        if name not in SECTIONS:
            raise ConfigError(f"config.skip_sections: unknown section '{name}'")

    return GlobalSettings(
        skip_sections=frozenset(skip),
        default_policy=_parse_policy(raw.get("execution_policy"), "config"),
        default_env=_parse_env(raw.get("env"), "config.env"),
    )
