#!/usr/bin/env python3
"""Generate relocatable CMake find modules for prebuilt C/C++ libraries."""

import importlib.metadata
import json
import os
import re
import shutil
import subprocess
import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import (
    Any,
    Optional,
    Sequence,
    Tuple,
    TypeAlias,
    TypedDict,
    TypeVar,
)


DEFAULT_OUTPUT_DIR = Path("build") / "find_modules"
DEFAULT_CONFIG_FILE_NAME = "find_modules.json"
DEFAULT_ROOT_PATH_POLICY = "default"
FIND_MODULE_FILE_TEMPLATE = "Find{package}.cmake"
ENV_CONFIG_FILE = "FINDGEN_CONFIG_FILE"
ENV_OUTPUT_DIR = "FIND_MODULE_DIR"
ENV_VERBOSE = "VERBOSE_FIND_MODULE"
TRUTHY_ENV_VALUES = {"1", "on", "true", "yes", "y"}
PACKAGE_NAME_PATTERN = re.compile(r"[A-Za-z0-9_.+-]+")
ENV_HINT_PATTERN = re.compile(r"^ENV\s+([A-Za-z_][A-Za-z0-9_]*)$")

ROOT_PATH_KEYWORDS: dict[str, Optional[str]] = {
    "default": None,
    "both": "CMAKE_FIND_ROOT_PATH_BOTH",
    "only": "ONLY_CMAKE_FIND_ROOT_PATH",
    "never": "NO_CMAKE_FIND_ROOT_PATH",
}
NO_PATH_FLAGS = (
    ("no_default_path", "NO_DEFAULT_PATH"),
    ("no_cmake_environment_path", "NO_CMAKE_ENVIRONMENT_PATH"),
    ("no_cmake_path", "NO_CMAKE_PATH"),
    ("no_system_environment_path", "NO_SYSTEM_ENVIRONMENT_PATH"),
    ("no_cmake_system_path", "NO_CMAKE_SYSTEM_PATH"),
)
REQUIRED_LIST_FIELDS = ("lib_names", "header_names")
SEARCH_LIST_FIELDS = (
    "lib_hints",
    "header_hints",
    "lib_paths",
    "header_paths",
    "lib_path_suffixes",
    "header_path_suffixes",
)
LIST_FIELDS = REQUIRED_LIST_FIELDS + SEARCH_LIST_FIELDS
DOC_FIELDS = ("lib_doc", "header_doc")
BOOL_FIELDS = tuple(name for name, _ in NO_PATH_FLAGS) + ("verbose", "pkg_config")
CONFIG_KEYS = {"output_dir", "verbose", "pkg_config", "modules"}


class ValidationError(ValueError):
    """Raised when a find module request cannot be rendered."""


@dataclass(frozen=True)
class GenerationRequest:
    """Everything needed to render one find module.

    Sequence fields are stored as tuples so a request can be reused and
    compared safely. Strings are left untouched so validation can reject
    them instead of splitting them into characters.
    """

    package: str
    lib_names: tuple[str, ...]
    header_names: tuple[str, ...]
    lib_hints: tuple[str, ...] = ()
    header_hints: tuple[str, ...] = ()
    lib_paths: tuple[str, ...] = ()
    header_paths: tuple[str, ...] = ()
    lib_path_suffixes: tuple[str, ...] = ()
    header_path_suffixes: tuple[str, ...] = ()
    lib_doc: Optional[str] = None
    header_doc: Optional[str] = None
    root_path_policy: str = DEFAULT_ROOT_PATH_POLICY
    no_default_path: bool = False
    no_cmake_environment_path: bool = False
    no_cmake_path: bool = False
    no_system_environment_path: bool = False
    no_cmake_system_path: bool = False
    verbose: bool = False
    pkg_config: bool = True

    def __post_init__(self) -> None:
        for name in LIST_FIELDS:
            value = getattr(self, name)
            if isinstance(value, (list, tuple)):
                object.__setattr__(self, name, tuple(value))


class ModuleConfig(TypedDict, total=False):
    package: str
    lib_names: list[str]
    header_names: list[str]
    lib_hints: list[str]
    header_hints: list[str]
    lib_paths: list[str]
    header_paths: list[str]
    lib_path_suffixes: list[str]
    header_path_suffixes: list[str]
    lib_doc: Optional[str]
    header_doc: Optional[str]
    root_path_policy: str
    no_default_path: bool
    no_cmake_environment_path: bool
    no_cmake_path: bool
    no_system_environment_path: bool
    no_cmake_system_path: bool
    verbose: bool
    pkg_config: bool


class GeneratorConfig(TypedDict):
    output_dir: Path
    verbose: bool
    pkg_config: bool
    modules: list[ModuleConfig]
    project_root: Optional[Path]
    output_dir_resolved: Optional[Path]
    config_path: Optional[Path]


class ParsedArgs(TypedDict):
    positionals: list[str]
    options: dict[str, Any]


T = TypeVar("T")

ValidationResult: TypeAlias = tuple[int, Optional[T]]
StringValidationResult: TypeAlias = tuple[int, Optional[str]]
ListValidationResult: TypeAlias = tuple[int, Optional[list[str]]]
BoolValidationResult: TypeAlias = tuple[int, Optional[bool]]
ModuleValidationResult: TypeAlias = tuple[int, Optional[ModuleConfig]]
PathLike: TypeAlias = Path | str
OptionalPathLike: TypeAlias = PathLike | None


class GeneratorConfigManager:
    def __init__(
        self,
        output_dir: Path = DEFAULT_OUTPUT_DIR,
        verbose: bool = False,
        pkg_config: bool = True,
        modules: Optional[list[ModuleConfig]] = None,
        project_root: Optional[Path] = None,
        output_dir_resolved: Optional[Path] = None,
        config_path: Optional[Path] = None,
    ):
        self._output_dir = output_dir
        self._verbose = verbose
        self._pkg_config = pkg_config
        self._modules: list[ModuleConfig] = modules if modules is not None else []
        self._project_root = project_root
        self._output_dir_resolved = output_dir_resolved
        self._config_path = config_path

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    @property
    def verbose(self) -> bool:
        return self._verbose

    @property
    def pkg_config(self) -> bool:
        return self._pkg_config

    @property
    def modules(self) -> list[ModuleConfig]:
        return self._modules

    @property
    def project_root(self) -> Optional[Path]:
        return self._project_root

    @property
    def output_dir_resolved(self) -> Optional[Path]:
        return self._output_dir_resolved

    @property
    def config_path(self) -> Optional[Path]:
        return self._config_path

    def set_output_dir(self, value: Path) -> None:
        self._output_dir = value

    def set_verbose(self, value: bool) -> None:
        self._verbose = value

    def set_pkg_config(self, value: bool) -> None:
        self._pkg_config = value

    def set_modules(self, value: list[ModuleConfig]) -> None:
        self._modules = value

    def set_project_root(self, value: Path) -> None:
        self._project_root = value

    def set_output_dir_resolved(self, value: Optional[Path]) -> None:
        self._output_dir_resolved = value

    def set_config_path(self, value: Optional[Path]) -> None:
        self._config_path = value

    def to_dict(self) -> GeneratorConfig:
        data: GeneratorConfig = {
            "output_dir": self._output_dir,
            "verbose": self._verbose,
            "pkg_config": self._pkg_config,
            "modules": self._modules,
            "project_root": self._project_root,
            "output_dir_resolved": self._output_dir_resolved,
            "config_path": self._config_path,
        }
        return data

    @classmethod
    def from_dict(cls, config: GeneratorConfig) -> "GeneratorConfigManager":
        return cls(
            output_dir=config["output_dir"],
            verbose=config["verbose"],
            pkg_config=config["pkg_config"],
            modules=config["modules"],
            project_root=config["project_root"],
            output_dir_resolved=config["output_dir_resolved"],
            config_path=config["config_path"],
        )


def info(message: str) -> None:
    """Print a standard informational message."""
    print(f"[pyfindgen] {message}")


def error(message: str) -> None:
    """Print a standardized error message to stderr."""
    print(f"error: {message}", file=sys.stderr)


def _resolve_path(path: PathLike) -> Path:
    try:
        return Path(path).resolve()
    except OSError:
        return Path(path).absolute()


def _expand_and_normalize(path: PathLike, base_dir: Path) -> Tuple[Path, bool]:
    candidate = Path(path).expanduser()
    if candidate.is_absolute():
        return candidate, True
    return base_dir / candidate, False


def _realpath_with_missing(path: PathLike) -> Path:
    path = Path(path)
    missing_parts = []
    current = path
    while not current.exists():
        missing_parts.append(current.name)
        parent = current.parent
        if parent == current:
            break
        current = parent
    real_parent = _resolve_path(current)
    for name in reversed(missing_parts):
        real_parent = real_parent / name
    return real_parent


# Generator configuration manager
config_manager = GeneratorConfigManager()


def validate_request(request: GenerationRequest) -> None:
    """Raise ValidationError unless the request can be rendered as-is."""
    package = request.package
    if not isinstance(package, str) or not PACKAGE_NAME_PATTERN.fullmatch(package):
        raise ValidationError(
            f"package must be a non-empty CMake target name; got {package!r}"
        )
    for name in LIST_FIELDS:
        value = getattr(request, name)
        if not isinstance(value, tuple):
            raise ValidationError(f"{name} must be a list of strings")
        if name in REQUIRED_LIST_FIELDS and not value:
            raise ValidationError(f"{name} must not be empty")
        for entry in value:
            if not isinstance(entry, str) or not entry.strip():
                raise ValidationError(f"{name} must be a list of non-empty strings")
            if "\n" in entry or "\r" in entry:
                raise ValidationError(f"{name} entries must not include newlines")
    for name in DOC_FIELDS:
        value = getattr(request, name)
        if value is None:
            continue
        if not isinstance(value, str):
            raise ValidationError(f"{name} must be a string")
        if "\n" in value or "\r" in value:
            raise ValidationError(f"{name} must not include newlines")
    if request.root_path_policy not in ROOT_PATH_KEYWORDS:
        choices = ", ".join(ROOT_PATH_KEYWORDS)
        raise ValidationError(
            f"root_path_policy must be one of {choices}; "
            f"got {request.root_path_policy!r}"
        )


def _cmake_escape(value: str) -> str:
    value = value.replace("\\", "\\\\").replace('"', '\\"')
    # Quoted arguments keep "\;" verbatim, so ";" is left as written.
    value = value.replace("$", "\\$")
    value = value.replace("#", "\\#")
    return value


def _cmake_quote(value: str) -> str:
    # Leaves ${...} and $ENV{...} intact so they expand when CMake runs the module.
    escaped = value.replace("\\", "/").replace('"', '\\"')
    return f'"{escaped}"'


def _search_argument(entry: str) -> str:
    match = ENV_HINT_PATTERN.match(entry.strip())
    if match:
        return f"ENV {match.group(1)}"
    return _cmake_quote(entry)


def _append_keyword_args(lines: list[str], keyword: str, entries: Sequence[str]) -> None:
    if not entries:
        return
    arguments = " ".join(_search_argument(entry) for entry in entries)
    lines.append(f"  {keyword} {arguments}")


def _append_search_call(
    lines: list[str],
    command: str,
    variable: str,
    names: Sequence[str],
    hints: Sequence[str],
    paths: Sequence[str],
    suffixes: Sequence[str],
    doc: str,
    request: GenerationRequest,
) -> None:
    lines.append(f"{command}({variable}")
    lines.append("  NAMES " + " ".join(_cmake_quote(name) for name in names))
    _append_keyword_args(lines, "HINTS", hints)
    _append_keyword_args(lines, "PATHS", paths)
    _append_keyword_args(lines, "PATH_SUFFIXES", suffixes)
    lines.append(f'  DOC "{_cmake_escape(doc)}"')
    for attribute, keyword in NO_PATH_FLAGS:
        if getattr(request, attribute):
            lines.append(f"  {keyword}")
    root_keyword = ROOT_PATH_KEYWORDS[request.root_path_policy]
    if root_keyword:
        lines.append(f"  {root_keyword}")
    lines.append(")")


def _append_trace(lines: list[str], module: str, message: str) -> None:
    lines.append(f'message(STATUS "{module}: {message}")')


def _append_found_trace(
    lines: list[str], module: str, variable: str, what: str
) -> None:
    lines.extend(
        [
            f"if({variable})",
            f'  message(STATUS "{module}: found {what} ${{{variable}}}")',
            "else()",
            f'  message(STATUS "{module}: {what} not found")',
            "endif()",
        ]
    )


def _render_header(request: GenerationRequest, use_pkg_config: bool) -> list[str]:
    package = request.package
    lines = [
        f"# {FIND_MODULE_FILE_TEMPLATE.format(package=package)}",
        "#",
        "# Generated by pyfindgen. Regenerate instead of editing by hand.",
        "#",
        "# Imported targets:",
        f"#   {package}::{package}",
        "#",
        "# Result variables:",
        f"#   {package}_FOUND",
        f"#   {package}_LIBRARY, {package}_LIBRARIES",
        f"#   {package}_INCLUDE_DIR, {package}_INCLUDE_DIRS",
    ]
    if use_pkg_config:
        lines.append(f"#   {package}_VERSION")
        lines.append("#")
        lines.append(f"# Resolved through the pkg-config module '{package}'.")
    lines.append("")
    return lines


def _render_pkg_config_body(request: GenerationRequest) -> list[str]:
    package = request.package
    module = FIND_MODULE_FILE_TEMPLATE.format(package=package).removesuffix(".cmake")
    prefix = f"PC_{package}"
    lines: list[str] = []
    if request.verbose:
        _append_trace(lines, module, f"using pkg-config module {package}")
    lines.extend(
        [
            "find_package(PkgConfig QUIET)",
            "if(PKG_CONFIG_FOUND)",
            f"  pkg_check_modules({prefix} QUIET IMPORTED_TARGET {package})",
            "endif()",
            "",
            f"if({prefix}_FOUND)",
            f'  set({package}_LIBRARY "${{{prefix}_LINK_LIBRARIES}}")',
            f'  set({package}_INCLUDE_DIR "${{{prefix}_INCLUDE_DIRS}}")',
            f'  set({package}_VERSION "${{{prefix}_VERSION}}")',
            "endif()",
            "",
        ]
    )
    if request.verbose:
        _append_found_trace(lines, module, f"{prefix}_FOUND", "pkg-config module")
        lines.append("")
    lines.extend(
        [
            "include(FindPackageHandleStandardArgs)",
            f"find_package_handle_standard_args({package}",
            f"  REQUIRED_VARS {prefix}_FOUND",
            f"  VERSION_VAR {package}_VERSION",
            ")",
            "",
            f"if({package}_FOUND)",
            f'  set({package}_LIBRARIES "${{{package}_LIBRARY}}")',
            f'  set({package}_INCLUDE_DIRS "${{{package}_INCLUDE_DIR}}")',
            f"  if(NOT TARGET {package}::{package})",
            f"    add_library({package}::{package} INTERFACE IMPORTED)",
            f"    set_target_properties({package}::{package} PROPERTIES",
            f"      INTERFACE_LINK_LIBRARIES PkgConfig::{prefix}",
            "    )",
            "  endif()",
            "endif()",
        ]
    )
    return lines


def _render_search_body(request: GenerationRequest) -> list[str]:
    package = request.package
    module = FIND_MODULE_FILE_TEMPLATE.format(package=package).removesuffix(".cmake")
    library_var = f"{package}_LIBRARY"
    include_var = f"{package}_INCLUDE_DIR"
    saved_debug_var = f"_{package}_find_debug_mode"
    lines: list[str] = []
    if request.verbose:
        _append_trace(
            lines,
            module,
            "searching library names " + _cmake_escape(" ".join(request.lib_names)),
        )
        _append_trace(
            lines,
            module,
            "searching header names " + _cmake_escape(" ".join(request.header_names)),
        )
        lines.append(f'set({saved_debug_var} "${{CMAKE_FIND_DEBUG_MODE}}")')
        lines.append("set(CMAKE_FIND_DEBUG_MODE TRUE)")

    _append_search_call(
        lines,
        "find_library",
        library_var,
        request.lib_names,
        request.lib_hints,
        request.lib_paths,
        request.lib_path_suffixes,
        request.lib_doc or f"Path to the {package} library",
        request,
    )
    _append_search_call(
        lines,
        "find_path",
        include_var,
        request.header_names,
        request.header_hints,
        request.header_paths,
        request.header_path_suffixes,
        request.header_doc or f"Directory containing the {package} headers",
        request,
    )

    if request.verbose:
        lines.append(f'set(CMAKE_FIND_DEBUG_MODE "${{{saved_debug_var}}}")')
        lines.append(f"unset({saved_debug_var})")
        _append_found_trace(lines, module, library_var, "library")
        _append_found_trace(lines, module, include_var, "header directory")
    lines.append(f"mark_as_advanced({library_var} {include_var})")
    lines.append("")
    lines.extend(
        [
            "include(FindPackageHandleStandardArgs)",
            f"find_package_handle_standard_args({package}",
            f"  REQUIRED_VARS {library_var} {include_var}",
            ")",
            "",
            f"if({package}_FOUND)",
            f'  set({package}_LIBRARIES "${{{library_var}}}")',
            f'  set({package}_INCLUDE_DIRS "${{{include_var}}}")',
            f"  if(NOT TARGET {package}::{package})",
            f"    add_library({package}::{package} UNKNOWN IMPORTED)",
            f"    set_target_properties({package}::{package} PROPERTIES",
            f'      IMPORTED_LOCATION "${{{library_var}}}"',
            f'      INTERFACE_INCLUDE_DIRECTORIES "${{{include_var}}}"',
            "    )",
            "  endif()",
            "endif()",
        ]
    )
    return lines


def render_find_module(request: GenerationRequest, use_pkg_config: bool = False) -> str:
    """Render the text of Find<package>.cmake for a validated request.

    The result depends only on the arguments, so identical requests always
    render identical text. When use_pkg_config is set the library and header
    searches are left out and the pkg-config module of the same name is
    wrapped instead.
    """
    lines = _render_header(request, use_pkg_config)
    if use_pkg_config:
        lines.extend(_render_pkg_config_body(request))
    else:
        lines.extend(_render_search_body(request))
    return "\n".join(lines).rstrip() + "\n"


def _pkg_config_exists(name: str) -> bool:
    if not shutil.which("pkg-config"):
        return False
    result = subprocess.run(
        ["pkg-config", "--exists", name],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    return result.returncode == 0


def _use_pkg_config(request: GenerationRequest) -> bool:
    if not request.pkg_config:
        return False
    return _pkg_config_exists(request.package)


def _ignored_search_fields(request: GenerationRequest) -> list[str]:
    return [name for name in SEARCH_LIST_FIELDS if getattr(request, name)]


def _find_module_path(package: str, output: OptionalPathLike = None) -> Path:
    file_name = FIND_MODULE_FILE_TEMPLATE.format(package=package)
    if output is None:
        return DEFAULT_OUTPUT_DIR / file_name
    text = os.fspath(output)
    path = Path(text).expanduser()
    if path.is_dir() or text.endswith(("/", os.sep)):
        return path / file_name
    return path


def generate_find_module(
    request: GenerationRequest, output: OptionalPathLike = None
) -> Path:
    """Write Find<package>.cmake for request and return its path.

    output may name the file itself or an existing directory; it defaults
    to build/find_modules. Raises ValidationError before anything is written
    when the request is incomplete. Whether the library is actually found is
    decided later, when CMake runs the generated module.
    """
    validate_request(request)
    use_pkg_config = _use_pkg_config(request)
    if use_pkg_config:
        info(f"pkg-config module '{request.package}' found; using it")
        ignored = _ignored_search_fields(request)
        if ignored:
            info(f"ignoring {', '.join(ignored)} for '{request.package}'")
    contents = render_find_module(request, use_pkg_config)
    path = _find_module_path(request.package, output)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding="utf-8", newline="\n")
    return path


def _validate_non_empty_string(value: Any, field_name: str) -> StringValidationResult:
    """Validate value is a non-empty string.

    Returns (0, stripped_string) if valid, (0, None) if value is None,
    or (1, None) if invalid with error message printed.
    """
    if value is None:
        return (0, None)
    if isinstance(value, str) and value.strip():
        return (0, value.strip())
    error(f"config {field_name} must be a non-empty string")
    return (1, None)


def _validate_string_list(
    value: Any, field_name: str, allow_empty: bool = True
) -> ListValidationResult:
    """Validate value is a list of non-empty strings.

    Returns (0, list) if valid, (0, None) if value is None,
    or (1, None) if invalid. Entries are kept as written.
    """
    if value is None:
        return (0, None)
    if not isinstance(value, list):
        error(f"config {field_name} must be a list of strings")
        return (1, None)
    normalized = []
    for entry in value:
        if not isinstance(entry, str) or not entry.strip():
            error(f"config {field_name} must be a list of non-empty strings")
            return (1, None)
        normalized.append(entry)
    if not normalized and not allow_empty:
        error(f"config {field_name} must not be empty")
        return (1, None)
    return (0, normalized)


def _validate_optional_string(value: Any, field_name: str) -> StringValidationResult:
    if value is None:
        return (0, None)
    if isinstance(value, str):
        return (0, value)
    error(f"config {field_name} must be a string")
    return (1, None)


def _validate_bool(value: Any, field_name: str) -> BoolValidationResult:
    if value is None:
        return (0, None)
    if isinstance(value, bool):
        return (0, value)
    error(f"config {field_name} must be true or false")
    return (1, None)


def _validate_root_path_policy(value: Any, field_name: str) -> StringValidationResult:
    if value is None:
        return (0, None)
    if isinstance(value, str) and value.strip() in ROOT_PATH_KEYWORDS:
        return (0, value.strip())
    choices = ", ".join(ROOT_PATH_KEYWORDS)
    error(f"config {field_name} must be one of {choices}")
    return (1, None)


def _validate_module(entry: Any, index: int) -> ModuleValidationResult:
    """Validate a single entry of the modules list.

    Requires package, lib_names and header_names; every other key must be a
    known request field. Error messages include the index number.
    """
    if not isinstance(entry, dict):
        error("config modules entries must be objects")
        return (1, None)
    known = {item.name for item in fields(GenerationRequest)}
    unknown = sorted(key for key in entry if key not in known)
    if unknown:
        error(f"config modules[{index}] has unknown keys: {', '.join(unknown)}")
        return (1, None)

    module: ModuleConfig = {}
    result, package = _validate_non_empty_string(
        entry.get("package"), f"modules[{index}].package"
    )
    if result:
        return (1, None)
    if package is None:
        error(f"config modules[{index}].package is required")
        return (1, None)
    module["package"] = package

    for name in LIST_FIELDS:
        required = name in REQUIRED_LIST_FIELDS
        value = entry.get(name)
        if value is None and required:
            error(f"config modules[{index}].{name} is required")
            return (1, None)
        result, validated_list = _validate_string_list(
            value, f"modules[{index}].{name}", allow_empty=not required
        )
        if result:
            return (1, None)
        if validated_list is not None:
            module[name] = validated_list

    for name in DOC_FIELDS:
        result, validated = _validate_optional_string(
            entry.get(name), f"modules[{index}].{name}"
        )
        if result:
            return (1, None)
        if validated is not None:
            module[name] = validated

    result, policy = _validate_root_path_policy(
        entry.get("root_path_policy"), f"modules[{index}].root_path_policy"
    )
    if result:
        return (1, None)
    if policy is not None:
        module["root_path_policy"] = policy

    for name in BOOL_FIELDS:
        result, flag = _validate_bool(entry.get(name), f"modules[{index}].{name}")
        if result:
            return (1, None)
        if flag is not None:
            module[name] = flag

    return (0, module)


def _apply_generator_level_config(data: dict, manager: GeneratorConfigManager) -> int:
    """Validate and apply the top-level fields of a config file.

    Handles: output_dir, verbose, pkg_config, modules.
    Returns 0 on success, 1 on validation error.
    """
    unknown = sorted(key for key in data if key not in CONFIG_KEYS)
    if unknown:
        error(f"config has unknown keys: {', '.join(unknown)}")
        return 1

    result, validated = _validate_non_empty_string(data.get("output_dir"), "output_dir")
    if result:
        return 1
    if validated is not None:
        manager.set_output_dir(Path(validated))

    result, flag = _validate_bool(data.get("verbose"), "verbose")
    if result:
        return 1
    if flag is not None:
        manager.set_verbose(flag)

    result, flag = _validate_bool(data.get("pkg_config"), "pkg_config")
    if result:
        return 1
    if flag is not None:
        manager.set_pkg_config(flag)

    modules = data.get("modules")
    if modules is None:
        return 0
    if not isinstance(modules, list):
        error("config modules must be a list of objects")
        return 1
    normalized: list[ModuleConfig] = []
    seen: set[str] = set()
    for index, entry in enumerate(modules):
        result, module = _validate_module(entry, index)
        if result or module is None:
            return 1
        if module["package"] in seen:
            error(f"config modules[{index}] repeats package '{module['package']}'")
            return 1
        seen.add(module["package"])
        normalized.append(module)
    manager.set_modules(normalized)
    return 0


def _apply_config_file(path: Path) -> int:
    """Load and validate a JSON config file into config_manager."""
    manager = globals()["config_manager"]
    try:
        contents = path.read_text(encoding="utf-8")
    except OSError as exc:
        error(f"failed to read config file {path}: {exc}")
        return 1
    try:
        data = json.loads(contents)
    except json.JSONDecodeError as exc:
        error(f"invalid JSON in {path}: {exc}")
        return 1
    if not isinstance(data, dict):
        error(f"config file {path} must contain a JSON object")
        return 1
    return _apply_generator_level_config(data, manager)


def _env_flag(name: str) -> bool:
    value = os.environ.get(name, "")
    return value.strip().lower() in TRUTHY_ENV_VALUES


def _apply_env_overrides() -> None:
    manager = globals()["config_manager"]
    output_dir_override = os.environ.get(ENV_OUTPUT_DIR)
    if output_dir_override:
        manager.set_output_dir(Path(output_dir_override))
    if _env_flag(ENV_VERBOSE):
        manager.set_verbose(True)


def _discover_config_path(start_dir: Path, names: Sequence[str]) -> Optional[Path]:
    current = Path(start_dir).resolve()
    while True:
        for name in names:
            candidate = current / name
            if candidate.exists():
                return candidate
        if current.parent == current:
            break
        current = current.parent
    return None


def _resolve_project_root(config_path: OptionalPathLike) -> Path:
    if not config_path:
        return _realpath_with_missing(Path.cwd())
    config_path = Path(config_path)
    if not config_path.is_absolute():
        config_path = Path.cwd() / config_path
    return _realpath_with_missing(config_path.parent)


def _resolve_config_paths(
    project_root: Path, config_manager: Optional[GeneratorConfigManager] = None
) -> None:
    """Populate resolved paths for the current configuration."""
    manager = (
        config_manager if config_manager is not None else globals()["config_manager"]
    )
    manager.set_project_root(project_root)
    output_dir, _ = _expand_and_normalize(manager.output_dir, project_root)
    manager.set_output_dir_resolved(output_dir)


def output_dir() -> Path:
    manager = globals()["config_manager"]
    return manager.output_dir_resolved or manager.output_dir


def _request_from_module(
    module: ModuleConfig, config_manager: Optional[GeneratorConfigManager] = None
) -> GenerationRequest:
    """Build a request from a config entry, applying global defaults."""
    manager = (
        config_manager if config_manager is not None else globals()["config_manager"]
    )
    values: dict[str, Any] = dict(module)
    values["verbose"] = bool(module.get("verbose")) or manager.verbose
    values["pkg_config"] = module.get("pkg_config", manager.pkg_config)
    values.setdefault("lib_names", [])
    values.setdefault("header_names", [])
    return GenerationRequest(**values)


def _lookup_module(package: str) -> Optional[ModuleConfig]:
    for module in globals()["config_manager"].modules:
        if module["package"] == package:
            return module
    return None


def _generate(request: GenerationRequest, output: OptionalPathLike) -> int:
    try:
        path = generate_find_module(request, output)
    except ValidationError as exc:
        error(f"{request.package}: {exc}")
        return 2
    except OSError as exc:
        error(f"failed to write find module for '{request.package}': {exc}")
        return 1
    print(path)
    return 0


def generate_all() -> int:
    """Generate every module listed in the config file."""
    modules = globals()["config_manager"].modules
    if not modules:
        error("no modules configured")
        return 2
    for module in modules:
        request = _request_from_module(module)
        file_name = FIND_MODULE_FILE_TEMPLATE.format(package=request.package)
        result = _generate(request, output_dir() / file_name)
        if result != 0:
            return result
    return 0


def print_find_module(request: GenerationRequest) -> int:
    """Render one module to stdout without writing it."""
    try:
        validate_request(request)
    except ValidationError as exc:
        error(f"{request.package}: {exc}")
        return 2
    sys.stdout.write(render_find_module(request, _use_pkg_config(request)))
    return 0


def list_modules() -> int:
    modules = globals()["config_manager"].modules
    if not modules:
        info("no modules configured")
        return 0
    for module in modules:
        print(module["package"])
    return 0


LIST_OPTIONS = {
    "--lib-name": "lib_names",
    "--header-name": "header_names",
    "--lib-hint": "lib_hints",
    "--header-hint": "header_hints",
    "--lib-path": "lib_paths",
    "--header-path": "header_paths",
    "--lib-path-suffix": "lib_path_suffixes",
    "--header-path-suffix": "header_path_suffixes",
}
VALUE_OPTIONS = {
    "--lib-doc": "lib_doc",
    "--header-doc": "header_doc",
    "--root-path": "root_path_policy",
    "--output": "output",
    "--config": "config",
}
FLAG_OPTIONS = {
    "--no-default-path": ("no_default_path", True),
    "--no-cmake-environment-path": ("no_cmake_environment_path", True),
    "--no-cmake-path": ("no_cmake_path", True),
    "--no-system-environment-path": ("no_system_environment_path", True),
    "--no-cmake-system-path": ("no_cmake_system_path", True),
    "--verbose": ("verbose", True),
    "--no-pkg-config": ("pkg_config", False),
}
NON_REQUEST_OPTIONS = {"output", "config"}


def _parse_command_args(args: Sequence[str]) -> ValidationResult[ParsedArgs]:
    """Split command arguments into positionals and recognized options.

    List options may repeat; value options accept --name value or
    --name=value. Returns (2, None) on a usage error.
    """
    parsed: ParsedArgs = {"positionals": [], "options": {}}
    options = parsed["options"]
    index = 0
    while index < len(args):
        arg = args[index]
        name, has_inline, inline_value = arg.partition("=")
        if name in FLAG_OPTIONS:
            if has_inline:
                error(f"usage: {name} does not take a value")
                return (2, None)
            key, flag = FLAG_OPTIONS[name]
            options[key] = flag
            index += 1
            continue
        if name in LIST_OPTIONS or name in VALUE_OPTIONS:
            if has_inline:
                value = inline_value
                index += 1
            else:
                if index + 1 >= len(args):
                    error(f"usage: {name} requires a value")
                    return (2, None)
                value = args[index + 1]
                index += 2
            if not value.strip():
                error(f"usage: {name} requires a non-empty value")
                return (2, None)
            if name in LIST_OPTIONS:
                options.setdefault(LIST_OPTIONS[name], []).append(value)
            else:
                options[VALUE_OPTIONS[name]] = value
            continue
        if arg.startswith("--"):
            error(f"unknown option '{arg}'")
            return (2, None)
        parsed["positionals"].append(arg)
        index += 1
    return (0, parsed)


def _request_from_args(parsed: ParsedArgs) -> ValidationResult[GenerationRequest]:
    positionals = parsed["positionals"]
    if len(positionals) != 1:
        error("usage: pyfindgen generate <package> --lib-name <name> --header-name <name>")
        return (2, None)
    package = positionals[0]
    request_options = {
        key: value
        for key, value in parsed["options"].items()
        if key not in NON_REQUEST_OPTIONS
    }
    manager = globals()["config_manager"]

    module = _lookup_module(package)
    if module is not None:
        layered: dict[str, Any] = dict(module)
        layered.update(request_options)
        return (0, _request_from_module(layered))

    values: dict[str, Any] = {
        "package": package,
        "lib_names": [],
        "header_names": [],
        "pkg_config": manager.pkg_config,
    }
    values.update(request_options)
    values["verbose"] = bool(values.get("verbose")) or manager.verbose
    return (0, GenerationRequest(**values))


def usage() -> None:
    print("usage: pyfindgen <command> [args...]")
    print("")
    print("commands:")
    print("  generate (g) <package> [options]  write Find<package>.cmake")
    print("  print (p) <package> [options]     print the module instead of writing it")
    print("  all (a)                           generate every configured module")
    print("  list (l)                          list configured modules")
    print("  help (h)                          show this help text")
    print("")
    print("generate and print start from the configured module of the same name,")
    print("if any; options given on the command line replace its fields.")
    print("")
    print("search options (repeatable):")
    print("  --lib-name <name>             candidate library name (required)")
    print("  --header-name <name>          candidate header name (required)")
    print("  --lib-hint, --header-hint <dir>")
    print("  --lib-path, --header-path <dir>")
    print("  --lib-path-suffix, --header-path-suffix <suffix>")
    print("")
    print("other options:")
    print("  --lib-doc, --header-doc <text>  cache variable documentation")
    print("  --root-path <default|both|only|never>")
    print("  --no-default-path  --no-cmake-environment-path  --no-cmake-path")
    print("  --no-system-environment-path  --no-cmake-system-path")
    print("  --verbose          trace the search when CMake runs the module")
    print("  --no-pkg-config    never wrap a pkg-config module of the same name")
    print("  --output <path>    output file, or a directory (existing or ending in '/')")
    print(f"  --config <path>    load modules from a JSON file ({DEFAULT_CONFIG_FILE_NAME})")
    print("")
    print("environment:")
    print(f"  {ENV_CONFIG_FILE}  config file path")
    print(f"  {ENV_OUTPUT_DIR}      output directory override")
    print(f"  {ENV_VERBOSE}  set to 1 to trace every generated module")
    print("")
    print("examples:")
    print("  pyfindgen generate Bar --lib-name bar --header-name bar.h")
    print("  pyfindgen g GLib --lib-name glib-2.0 --header-name glib.h \\")
    print("      --header-path-suffix glib-2.0 --lib-hint '$ENV{GLIB_ROOT}/lib'")
    print("  pyfindgen print Bar --lib-name bar --header-name bar.h --verbose")
    print("  pyfindgen all --config find_modules.json")


def _load_config(config_path: Optional[str], required: bool) -> int:
    manager = globals()["config_manager"]
    config_env = os.environ.get(ENV_CONFIG_FILE)
    if config_path:
        config_candidate, _ = _expand_and_normalize(config_path, Path.cwd())
    elif config_env:
        config_candidate, _ = _expand_and_normalize(config_env, Path.cwd())
    else:
        config_candidate = _discover_config_path(Path.cwd(), [DEFAULT_CONFIG_FILE_NAME])

    if config_candidate is None:
        if required:
            error(f"no find module config found; pass --config or set {ENV_CONFIG_FILE}")
            return 2
        return 0
    if not config_candidate.exists():
        error(f"config file {config_candidate} not found")
        return 2
    manager.set_config_path(config_candidate)
    return _apply_config_file(config_candidate)


def main() -> int:
    if len(sys.argv) < 2:
        usage()
        return 2

    command = sys.argv[1]
    if command in {"-v", "--version"}:
        try:
            version = importlib.metadata.version("pyfindgen")
        except importlib.metadata.PackageNotFoundError:
            version = "0.1.0"
        print(f"pyfindgen {version}")
        return 0
    args = sys.argv[2:]

    aliases = {
        "g": "generate",
        "p": "print",
        "a": "all",
        "l": "list",
        "h": "help",
    }
    command = aliases.get(command, command)
    if command in {"help", "-h", "--help"}:
        usage()
        return 0
    if command not in {"generate", "print", "all", "list"}:
        error(f"unknown command '{command}'")
        usage()
        return 2

    result, parsed = _parse_command_args(args)
    if result or parsed is None:
        return result or 2
    options = parsed["options"]
    if command in {"all", "list"}:
        if parsed["positionals"] or set(options) - {"config"}:
            error(f"usage: pyfindgen {command} [--config <path>]")
            return 2

    result = _load_config(options.get("config"), required=command in {"all", "list"})
    if result != 0:
        return result
    _apply_env_overrides()
    project_root = _resolve_project_root(globals()["config_manager"].config_path)
    _resolve_config_paths(project_root)

    if command == "list":
        return list_modules()
    if command == "all":
        return generate_all()

    result, request = _request_from_args(parsed)
    if result or request is None:
        return result or 2
    if command == "print":
        return print_find_module(request)
    output = options.get("output")
    if output is None:
        output = output_dir() / FIND_MODULE_FILE_TEMPLATE.format(package=request.package)
    return _generate(request, output)


if __name__ == "__main__":
    raise SystemExit(main())
