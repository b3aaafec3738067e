from __future__ import annotations

import os
import shlex
import shutil
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Optional

import yaml

from stagegate.core.contracts import FAILURE_POLICIES, CheckerSpec, FailurePolicy
from stagegate.core.errors import ConfigError


DEFAULT_FILE_TYPES = ".c .h .cc .hh .cpp .hpp .cxx .hxx .inl .cu"

# Same flags the Uncrustify/CppCheck hooks have always used.
DEFAULT_REFORMAT_ARGS = "-c {config} -l {language} -f {path} -q -L 2"
DEFAULT_ANALYZE_ARGS = (
    "--std={standard} -q --enable=warning --enable=performance "
    "--enable=portability --enable=style --inconclusive {path}"
)

# key -> (default, git config type)
CONFIG_KEYS: dict[str, tuple[str, Optional[str]]] = {
    "hooks.company": ("Xiriar", None),
    "hooks.parallel": ("4", "int"),
    "hooks.pre-commit.cleanup": ("true", "bool"),
    "hooks.pre-commit.skipmerge": ("false", "bool"),
    "hooks.pre-commit.reformat": ("enable", None),
    "hooks.pre-commit.analyze": ("enable", None),
    "hooks.pre-commit.maxlines": ("25", "int"),
    "hooks.pre-commit.onfailure": ("record", None),
    "hooks.reformat.autoapply": ("false", "bool"),
    "hooks.uncrustify.path": ("uncrustify", "path"),
    "hooks.uncrustify.config": ("", "path"),
    "hooks.uncrustify.language": ("CPP", None),
    "hooks.uncrustify.filetypes": (DEFAULT_FILE_TYPES, None),
    "hooks.uncrustify.args": (DEFAULT_REFORMAT_ARGS, None),
    "hooks.cppcheck.path": ("cppcheck", "path"),
    "hooks.cppcheck.standard": ("c++03", None),
    "hooks.cppcheck.filetypes": (DEFAULT_FILE_TYPES, None),
    "hooks.cppcheck.args": (DEFAULT_ANALYZE_ARGS, None),
}

ConfigGetter = Callable[[str, str, Optional[str]], str]


@dataclass(frozen=True)
class GateConfig:
    """Everything a run needs, read once before any work starts."""

    company: str
    parallel: int
    cleanup: bool
    skip_merge: bool
    auto_apply: bool
    max_lines: int
    on_failure: FailurePolicy
    reformatter: CheckerSpec
    analyzer: CheckerSpec
    temp_dir: Optional[Path] = None

    def checkers(self) -> list[CheckerSpec]:
        """Enabled checkers, reformatter first."""
        return [c for c in (self.reformatter, self.analyzer) if c.enabled]

    def with_overrides(self, **changes: Any) -> "GateConfig":
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def _as_bool(key: str, value: str) -> bool:
    v = str(value).strip().lower()
    if v in ("true", "yes", "on", "1"):
        return True
    if v in ("false", "no", "off", "0", ""):
        return False
    raise ConfigError(code="E_CONFIG_INVALID", message=f"expected a boolean, got {value!r}", path=key)


def _as_int(key: str, value: str) -> int:
    try:
        return int(str(value).strip())
    except ValueError:
        raise ConfigError(code="E_CONFIG_INVALID", message=f"expected an integer, got {value!r}", path=key)


def _as_switch(key: str, value: str) -> bool:
    v = str(value).strip().lower()
    if v in ("enable", "enabled"):
        return True
    if v in ("disable", "disabled"):
        return False
    raise ConfigError(code="E_CONFIG_INVALID", message=f"expected enable|disable, got {value!r}", path=key)


def _flatten(raw: dict[str, Any], prefix: str) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in raw.items():
        if not isinstance(k, str) or not k.strip():
            raise ConfigError(code="E_CONFIG_FILE_INVALID", message="keys must be non-empty strings", path=prefix)
        key = f"{prefix}.{k.strip()}"
        if isinstance(v, dict):
            out.update(_flatten(v, key))
        else:
            out[key] = v
    return out


def load_config_file(path: str | Path) -> dict[str, str]:
    """Load YAML overrides; nested mappings become dotted `hooks.*` keys.

    Example:
      parallel: 8
      reformat: {autoapply: true}
      uncrustify:
        config: /etc/uncrustify.cfg
    """
    p = Path(path)
    if not p.is_file():
        raise ConfigError(code="E_CONFIG_FILE_NOT_FOUND", message="config file not found", path=str(p))
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(code="E_CONFIG_FILE_INVALID", message=str(e), path=str(p)) from e
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(code="E_CONFIG_FILE_INVALID", message="config file must be a mapping", path=str(p))

    out: dict[str, str] = {}
    for key, value in _flatten(raw, "hooks").items():
        if key not in CONFIG_KEYS:
            raise ConfigError(code="E_CONFIG_UNKNOWN_KEY", message=f"unknown key: {key}", path=str(p))
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif isinstance(value, list):
            value = " ".join(str(v) for v in value)
        out[key] = str(value)
    return out


def read_raw_config(get: ConfigGetter, overrides_file: str | Path | None = None) -> dict[str, str]:
    values = {key: get(key, default, kind) for key, (default, kind) in CONFIG_KEYS.items()}
    if overrides_file:
        values.update(load_config_file(overrides_file))
    return values


def build_config(values: dict[str, str], *, repo_root: Optional[Path] = None) -> GateConfig:
    on_failure = values["hooks.pre-commit.onfailure"].strip().lower()
    if on_failure not in FAILURE_POLICIES:
        raise ConfigError(
            code="E_CONFIG_INVALID",
            message=f"expected one of {'|'.join(FAILURE_POLICIES)}, got {on_failure!r}",
            path="hooks.pre-commit.onfailure",
        )

    reformat_config = values["hooks.uncrustify.config"]
    if not reformat_config and repo_root is not None:
        reformat_config = str(repo_root / "uncrustify.cfg")

    reformatter = CheckerSpec(
        kind="reformat",
        name="uncrustify",
        binary=values["hooks.uncrustify.path"],
        args=tuple(shlex.split(values["hooks.uncrustify.args"])),
        config=reformat_config or None,
        language=values["hooks.uncrustify.language"],
        extensions=tuple(values["hooks.uncrustify.filetypes"].split()),
        enabled=_as_switch("hooks.pre-commit.reformat", values["hooks.pre-commit.reformat"]),
    )
    analyzer = CheckerSpec(
        kind="analyze",
        name="cppcheck",
        binary=values["hooks.cppcheck.path"],
        args=tuple(shlex.split(values["hooks.cppcheck.args"])),
        language=values["hooks.cppcheck.standard"],
        extensions=tuple(values["hooks.cppcheck.filetypes"].split()),
        enabled=_as_switch("hooks.pre-commit.analyze", values["hooks.pre-commit.analyze"]),
    )

    return GateConfig(
        company=values["hooks.company"],
        parallel=_as_int("hooks.parallel", values["hooks.parallel"]),
        cleanup=_as_bool("hooks.pre-commit.cleanup", values["hooks.pre-commit.cleanup"]),
        skip_merge=_as_bool("hooks.pre-commit.skipmerge", values["hooks.pre-commit.skipmerge"]),
        auto_apply=_as_bool("hooks.reformat.autoapply", values["hooks.reformat.autoapply"]),
        max_lines=_as_int("hooks.pre-commit.maxlines", values["hooks.pre-commit.maxlines"]),
        on_failure=on_failure,  # type: ignore[arg-type]
        reformatter=reformatter,
        analyzer=analyzer,
    )


def load_config(
    get: ConfigGetter,
    overrides_file: str | Path | None = None,
    *,
    repo_root: Optional[Path] = None,
) -> GateConfig:
    return build_config(read_raw_config(get, overrides_file), repo_root=repo_root)


def _resolve_binary(binary: str) -> Optional[str]:
    if os.sep in binary or (os.altsep and os.altsep in binary):
        return binary if os.path.isfile(binary) and os.access(binary, os.X_OK) else None
    return shutil.which(binary)


def validate_config(config: GateConfig) -> GateConfig:
    """Check everything that can be checked before work starts.

    Returns a copy with checker binaries resolved to absolute paths.
    """
    if config.parallel < 1:
        raise ConfigError(
            code="E_CONFIG_PARALLEL",
            message=f"number of parallel tasks set to {config.parallel}; configure by: "
            "git config [--global] hooks.parallel <n>",
            path="hooks.parallel",
        )
    if config.max_lines < 0:
        raise ConfigError(
            code="E_CONFIG_INVALID",
            message="maxlines must be >= 0",
            path="hooks.pre-commit.maxlines",
        )

    resolved: dict[str, CheckerSpec] = {}
    for attr in ("reformatter", "analyzer"):
        spec: CheckerSpec = getattr(config, attr)
        if not spec.enabled:
            continue
        binary = _resolve_binary(spec.binary)
        if binary is None:
            raise ConfigError(
                code="E_CONFIG_TOOL_NOT_FOUND",
                message=f"the {spec.name} executable not found ({spec.binary!r}); configure by: "
                f"git config [--global] hooks.{spec.name}.path <full_path>",
                path=f"hooks.{spec.name}.path",
            )
        if spec.kind == "reformat" and (not spec.config or not Path(spec.config).is_file()):
            raise ConfigError(
                code="E_CONFIG_FILE_NOT_FOUND",
                message=f"{spec.name} config file not found ({spec.config!r}); configure by: "
                f"git config [--global] hooks.{spec.name}.config <full_path>",
                path=f"hooks.{spec.name}.config",
            )
        resolved[attr] = replace(spec, binary=binary)

    return replace(config, **resolved)
