"""Flagsift - heuristic option and subcommand extraction from help text.

Turns free-form `--help` output or man page text into a structured model of a
command: option flags with their argument placeholders and descriptions, plus
candidate subcommand names. The model is normalized into a canonical,
deduplicated tree that renderers turn into completion scripts or JSON.

Pipeline:
    preprocess(text)          -> (option fragment, description fragment) pairs
    parse_line(text)          -> options, exact repeats removed
    detect_subcommands(text)  -> subcommand candidates
    assemble_command(...)     -> command tree built from the pieces above
    normalize(command)        -> canonical command tree

Settings:
- `~/.config/flagsift/config.json` holds optional settings
  (`verbose`, `max_depth`, `subcommand_depth`).
- `FLAGSIFT_HOME` environment variable overrides the location.
- `FLAGSIFT_<KEY>` environment variables override single settings.
"""

from __future__ import annotations

import bisect
import json
import os
import re
import sys
from dataclasses import dataclass, field, replace
from enum import IntEnum
from pathlib import Path
from typing import Final, NotRequired, TypedDict

# Constants
DEFAULT_MAX_DEPTH: Final[int] = 64
DEFAULT_SUBCOMMAND_DEPTH: Final[int] = 4
USAGE_KEYWORDS: Final[tuple[str, ...]] = ("usage", "synopsis")

_OPTION_SEPARATORS: Final[re.Pattern[str]] = re.compile(r"[,/|]")
_TOKEN: Final[re.Pattern[str]] = re.compile(r"\S+")
_SUBCOMMAND_NAME: Final[re.Pattern[str]] = re.compile(r"[A-Za-z0-9_-]+")
_USAGE_LINE: Final[re.Pattern[str]] = re.compile(
    r"^\s*usage\s*:\s*(.*)$", re.IGNORECASE
)


class ModelFormatError(ValueError):
    pass


def flagsift_home() -> Path:
    """Return flagsift's home directory.

    Defaults to `~/.config/flagsift`, overridable via `FLAGSIFT_HOME`.
    """
    raw = os.environ.get("FLAGSIFT_HOME")
    if raw:
        return Path(raw).expanduser()
    return Path.home() / ".config" / "flagsift"


def flagsift_config_path() -> Path:
    return flagsift_home() / "config.json"


def _load_config() -> dict:
    path = flagsift_config_path()
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError):
        return {}
    if isinstance(payload, dict):
        return payload
    return {}


def _config_get(*, key: str) -> object | None:
    # Environment variables override config.json for quick experimentation.
    # Example: `FLAGSIFT_VERBOSE=2`, `FLAGSIFT_MAX_DEPTH=8`.
    env_key = f"FLAGSIFT_{key.upper()}"
    env_val = os.environ.get(env_key)
    if env_val is not None and env_val.strip() != "":
        return env_val
    return _load_config().get(key)


def _setting_int(*, config_key: str, default: int) -> int:
    cfg = _config_get(key=config_key)
    if cfg is None or isinstance(cfg, bool):
        return default
    try:
        return int(cfg)
    except (TypeError, ValueError):
        return default


def _max_depth() -> int:
    return max(0, _setting_int(config_key="max_depth", default=DEFAULT_MAX_DEPTH))


def _subcommand_depth() -> int:
    return max(
        0,
        _setting_int(config_key="subcommand_depth", default=DEFAULT_SUBCOMMAND_DEPTH),
    )


def _verbose_level() -> int:
    raw = _config_get(key="verbose")
    if raw is None:
        return 0
    if isinstance(raw, bool):
        return 1 if raw else 0
    if isinstance(raw, int):
        if raw <= 0:
            return 0
        return 2 if raw > 1 else 1
    if isinstance(raw, str):
        value = raw.strip().lower()
        if value in {"", "0", "false", "no", "off"}:
            return 0
        if value in {"1", "true", "yes", "on", "basic"}:
            return 1
        return 2
    return 0


def _debug(message: str, *, verbose: int, level: int = 1) -> None:
    if verbose >= level:
        print(f"[flagsift] {message}", file=sys.stderr)


class OptionNameVariant(IntEnum):
    """Shape of an option name. Declaration order is the tie-break sort order."""

    LONG = 0  # --foo
    SHORT = 1  # -x
    OLD = 2  # -foo
    DOUBLEDASHALONE = 3  # --
    SINGLEDASHALONE = 4  # -


@dataclass(frozen=True, slots=True, order=True)
class OptionName:
    """One alias of an option, ordered by (raw, variant)."""

    raw: str  # e.g., "-v" or "--verbose"
    variant: OptionNameVariant

    @classmethod
    def from_text(cls, token: str) -> OptionName | None:
        variant = classify(token)
        if variant is None:
            return None
        return cls(raw=token, variant=variant)

    def __str__(self) -> str:
        return self.raw


@dataclass(frozen=True, slots=True)
class Option:
    """A flag with its aliases, argument placeholder and description.

    `names` is kept in canonical (raw, variant) order with unique raw text.
    An empty `argument` means the option takes no value.
    """

    names: tuple[OptionName, ...]
    argument: str = ""
    description: str = ""

    @property
    def key(self) -> tuple[tuple[OptionName, ...], str]:
        """Duplicate key; the description is not part of it."""
        return (self.names, self.argument)

    @property
    def is_valid(self) -> bool:
        return bool(self.names) and bool(self.names[0].raw) and bool(self.description)

    def __str__(self) -> str:
        names = " ".join(name.raw for name in self.names)
        return f"{names}  ::  {self.argument}\n{self.description}\n"


@dataclass(frozen=True, slots=True, order=True)
class SubcommandCandidate:
    """A (name, description) pair that looks like a nested command."""

    name: str
    description: str

    def __str__(self) -> str:
        return f"{self.name:<25} ({self.description})"


@dataclass(frozen=True, slots=True)
class Command:
    """A node of the command tree."""

    name: str
    description: str = ""
    usage: str = ""
    options: tuple[Option, ...] = ()
    subcommands: tuple[Command, ...] = ()
    version: str = ""


class OptionNamePayload(TypedDict):
    raw: str
    type: str


class OptionPayload(TypedDict):
    # Bare strings are the legacy name form.
    names: list[OptionNamePayload | str]
    argument: str
    description: str


class CommandPayload(TypedDict):
    name: str
    description: str
    usage: str
    options: list[OptionPayload]
    subcommands: NotRequired[list[CommandPayload]]
    version: NotRequired[str]


def _option_name_schema() -> dict:
    return {
        "oneOf": [
            {"type": "string", "pattern": "^-"},
            {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "raw": {"type": "string"},
                    "type": {
                        "type": "string",
                        "enum": [variant.name for variant in OptionNameVariant],
                    },
                },
                "required": ["raw", "type"],
            },
        ]
    }


def command_json_schema() -> dict:
    """JSON Schema for a serialized command tree (see `command_to_payload`)."""
    return {
        "type": "object",
        "additionalProperties": False,
        "properties": {
            "name": {"type": "string"},
            "description": {"type": "string"},
            "usage": {"type": "string"},
            "options": {
                "type": "array",
                "items": {"$ref": "#/$defs/option"},
            },
            "subcommands": {
                "type": "array",
                "items": {"$ref": "#"},
            },
            "version": {"type": "string"},
        },
        "$defs": {
            "optionName": _option_name_schema(),
            "option": {
                "type": "object",
                "additionalProperties": False,
                "properties": {
                    "names": {
                        "type": "array",
                        "items": {"$ref": "#/$defs/optionName"},
                    },
                    "argument": {"type": "string"},
                    "description": {"type": "string"},
                },
                "required": ["names", "argument", "description"],
            },
        },
        "required": ["name", "description", "usage", "options"],
    }


def classify(token: str) -> OptionNameVariant | None:
    """Classify a token as an option name variant, or None if it is not one."""
    if token == "-":
        return OptionNameVariant.SINGLEDASHALONE
    if token == "--":
        return OptionNameVariant.DOUBLEDASHALONE
    if token.startswith("--"):
        return OptionNameVariant.LONG
    if token.startswith("-"):
        # `-abc` is one opaque name, never `-a -b -c`.
        return OptionNameVariant.SHORT if len(token) == 2 else OptionNameVariant.OLD
    return None


def _lines(text: str) -> list[str]:
    """Split on line feeds only, dropping a trailing carriage return per line."""
    return [line.removesuffix("\r") for line in text.split("\n")]


def _tokens_with_gaps(line: str) -> list[tuple[str, str]]:
    """Split a line into (gap, token) pairs; gap is the whitespace before token."""
    out: list[tuple[str, str]] = []
    pos = 0
    for match in _TOKEN.finditer(line):
        out.append((line[pos : match.start()], match.group()))
        pos = match.end()
    return out


def _is_column_gap(gap: str) -> bool:
    return len(gap) >= 2 or "\t" in gap


def _option_cluster_end(tokens: list[tuple[str, str]]) -> int:
    """Return how many leading tokens belong to the option cluster.

    Flags and `--key=VALUE` tokens always belong to it. A bare word belongs
    to it as a placeholder (`--file FILE`) while it follows the previous token
    after a single space; a column gap before a bare word starts the
    description.
    """
    opt_end = 0
    for idx, (gap, token) in enumerate(tokens):
        if idx == 0 or token.startswith("-") or "=" in token:
            opt_end = idx + 1
        elif not _is_column_gap(gap):
            opt_end = idx + 1
        else:
            break
    return opt_end


def _next_line_description(lines: list[str], index: int) -> str:
    if index >= len(lines):
        return ""
    candidate = lines[index].strip()
    if not candidate or candidate.startswith("-"):
        return ""
    return candidate


def preprocess(text: str) -> list[tuple[str, str]]:
    """Split help text into (option fragment, description fragment) pairs.

    Handles both layouts found in the wild:
    - `  -v, --verbose     Enable verbose mode` (same line)
    - `  -o, --output` followed by an indented description line

    Lines that do not start with `-` after indentation are ignored. Pairs are
    returned in source order.
    """
    lines = _lines(text)
    pairs: list[tuple[str, str]] = []
    i = 0
    while i < len(lines):
        trimmed = lines[i].lstrip()
        if not trimmed.startswith("-"):
            i += 1
            continue

        tokens = _tokens_with_gaps(trimmed)
        opt_end = _option_cluster_end(tokens)
        if opt_end == 0:
            i += 1
            continue

        words = [token for _, token in tokens]
        option_part = " ".join(words[:opt_end])
        if opt_end < len(words):
            pairs.append((option_part, " ".join(words[opt_end:])))
            i += 1
            continue

        # Whole line is the option cluster: look one line ahead.
        description = _next_line_description(lines, i + 1)
        pairs.append((option_part, description))
        i += 2 if description else 1

    return pairs


def _option_clusters(option_fragment: str) -> list[str]:
    clusters = (part.strip() for part in _OPTION_SEPARATORS.split(option_fragment))
    return [cluster for cluster in clusters if cluster]


def _option_names(clusters: list[str]) -> tuple[OptionName, ...]:
    names: list[OptionName] = []
    seen: set[str] = set()
    for cluster in clusters:
        for word in cluster.split():
            if not word.startswith("-") or word in seen:
                continue
            name = OptionName.from_text(word)
            if name is None:
                continue
            seen.add(word)
            bisect.insort(names, name)
    return tuple(names)


def _option_argument(clusters: list[str]) -> str:
    for cluster in clusters:
        # First word is the option name itself.
        argument = " ".join(cluster.split()[1:])
        if argument and argument != ".":
            return argument
    return ""


def segment(option_fragment: str, description_fragment: str) -> Option | None:
    """Build an Option from one preprocessed pair, or None if it has no names."""
    clusters = _option_clusters(option_fragment)
    names = _option_names(clusters)
    if not names:
        return None
    return Option(
        names=names,
        argument=_option_argument(clusters),
        description=description_fragment,
    )


def parse_line(text: str, *, verbose: int = 0) -> list[Option]:
    """Extract options from a whole help text.

    Options documented verbatim more than once are kept once, at the position
    of their first occurrence. `verbose` >= 2 reports each dropped repeat.
    """
    options: list[Option] = []
    seen: set[Option] = set()
    for option_part, description in preprocess(text):
        option = segment(option_part, description)
        if option is None:
            continue
        if option in seen:
            _debug(
                f"dropped repeated option: {option_part}", verbose=verbose, level=2
            )
            continue
        seen.add(option)
        options.append(option)
    return options


def is_valid_subcommand_name(name: str) -> bool:
    if not name or name.startswith("-"):
        return False
    return _SUBCOMMAND_NAME.fullmatch(name) is not None


def _pairwise_candidate(first: str, second: str) -> SubcommandCandidate | None:
    head = first.strip()
    if not head or head.startswith("-"):
        return None
    name = head.split()[0]
    if not is_valid_subcommand_name(name):
        return None

    description = second.strip()
    if not description or description.startswith("-"):
        return None
    return SubcommandCandidate(name=name, description=description)


def _single_line_candidate(line: str) -> SubcommandCandidate | None:
    words = line.split()
    # Need at least 2 more words for the description (3+ total).
    if len(words) < 3 or not is_valid_subcommand_name(words[0]):
        return None
    return SubcommandCandidate(name=words[0], description=" ".join(words[1:]))


def detect_subcommands(text: str) -> list[SubcommandCandidate]:
    """Find lines that look like `name  description` subcommand entries.

    Returns candidates sorted by (name, description), without duplicates.
    """
    lines = _lines(text)
    found: set[SubcommandCandidate] = set()

    for first, second in zip(lines, lines[1:]):
        candidate = _pairwise_candidate(first, second)
        if candidate is not None:
            found.add(candidate)

    for line in lines:
        candidate = _single_line_candidate(line)
        if candidate is not None:
            found.add(candidate)

    return sorted(found)


def _clean_options(options: tuple[Option, ...]) -> tuple[Option, ...]:
    seen: set[tuple[tuple[OptionName, ...], str]] = set()
    kept: list[Option] = []
    for option in options:
        if option.key in seen:
            continue
        seen.add(option.key)
        kept.append(option)
    return tuple(option for option in kept if option.is_valid)


@dataclass(slots=True)
class _NormalizeFrame:
    node: Command
    depth: int
    next_child: int = 0
    children: list[Command] = field(default_factory=list)


def normalize(
    command: Command, *, max_depth: int = DEFAULT_MAX_DEPTH, verbose: int = 0
) -> Command:
    """Deduplicate and filter options at every node of a command tree.

    At each node, options sharing (names, argument) are reduced to the first
    one, then options without names or without a description are dropped.
    Nodes deeper than `max_depth` are cut from the tree (reported when
    `verbose` >= 1). Applying this twice gives the same tree as applying it
    once.
    """
    limit = max(0, max_depth)
    result = command
    # Post-order walk on an explicit stack; children finish before parents.
    stack = [_NormalizeFrame(node=command, depth=0)]
    while stack:
        frame = stack[-1]
        children = frame.node.subcommands if frame.depth < limit else ()
        if frame.next_child < len(children):
            child = children[frame.next_child]
            frame.next_child += 1
            stack.append(_NormalizeFrame(node=child, depth=frame.depth + 1))
            continue

        stack.pop()
        if frame.node.subcommands and frame.depth >= limit:
            _debug(
                f"cut {len(frame.node.subcommands)} subcommand(s) of "
                f"{frame.node.name!r} at depth {frame.depth}",
                verbose=verbose,
            )
        normalized = replace(
            frame.node,
            options=_clean_options(frame.node.options),
            subcommands=tuple(frame.children),
        )
        if stack:
            stack[-1].children.append(normalized)
        else:
            result = normalized
    return result


def parse_usage_header(keywords: list[str] | tuple[str, ...], block: str) -> str | None:
    """Return the lower-cased first line of `block` if it is a bare keyword header.

    `Usage:`, `  SYNOPSIS` and `usage` all match their keyword.
    """
    if not keywords or not block:
        return None
    lines = _lines(block)
    if not lines:
        return None
    header = lines[0].lower()
    for keyword in keywords:
        if re.fullmatch(rf"\s*{re.escape(keyword.lower())}\s*:?\s*", header):
            return header
    return None


def extract_usage(text: str) -> str:
    lines = _lines(text)
    for idx, line in enumerate(lines):
        match = _USAGE_LINE.match(line)
        if match:
            first = match.group(1).strip()
            body = [first] if first else []
        elif parse_usage_header(USAGE_KEYWORDS, line):
            body = []
        else:
            continue

        for follow in lines[idx + 1 :]:
            if not follow.strip():
                if body:
                    break
                continue
            body.append(follow.strip())
        return "\n".join(body)
    return ""


def assemble_command(
    *,
    name: str,
    text: str,
    depth: int | None = None,
    max_depth: int | None = None,
    verbose: int | None = None,
) -> Command:
    """Build the normalized command tree for one help text.

    With `depth > 0`, detected subcommand candidates become empty-bodied child
    commands (first candidate per name wins; the command's own name is
    skipped). `depth` and `max_depth` default to the `subcommand_depth` and
    `max_depth` settings; `verbose` defaults to the `verbose` setting. Settings
    are read here once and passed down, so the engine itself does no I/O.
    """
    if depth is None:
        depth = _subcommand_depth()
    if max_depth is None:
        max_depth = _max_depth()
    if verbose is None:
        verbose = _verbose_level()

    subcommands: list[Command] = []
    if depth > 0:
        taken: set[str] = {name}
        for candidate in detect_subcommands(text):
            if candidate.name in taken:
                continue
            taken.add(candidate.name)
            subcommands.append(
                Command(name=candidate.name, description=candidate.description)
            )

    command = Command(
        name=name,
        usage=extract_usage(text),
        options=tuple(parse_line(text, verbose=verbose)),
        subcommands=tuple(subcommands),
    )
    _debug(
        f"{name}: {len(command.options)} option(s), "
        f"{len(command.subcommands)} subcommand candidate(s)",
        verbose=verbose,
        level=2,
    )
    return normalize(command, max_depth=max_depth, verbose=verbose)


def _option_name_to_payload(
    name: OptionName, *, legacy_names: bool
) -> OptionNamePayload | str:
    if legacy_names:
        return name.raw
    return {"raw": name.raw, "type": name.variant.name}


def command_to_payload(
    command: Command, *, legacy_names: bool = False
) -> CommandPayload:
    """Convert a command tree to plain JSON-ready data.

    Option names become `{"raw", "type"}` objects, or bare strings with
    `legacy_names=True`. Empty `subcommands` and `version` are omitted.
    """
    payload: CommandPayload = {
        "name": command.name,
        "description": command.description,
        "usage": command.usage,
        "options": [
            {
                "names": [
                    _option_name_to_payload(name, legacy_names=legacy_names)
                    for name in option.names
                ],
                "argument": option.argument,
                "description": option.description,
            }
            for option in command.options
        ],
    }
    if command.subcommands:
        payload["subcommands"] = [
            command_to_payload(sub, legacy_names=legacy_names)
            for sub in command.subcommands
        ]
    if command.version:
        payload["version"] = command.version
    return payload


def _require_str(payload: dict, key: str, *, where: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise ModelFormatError(f"{where}.{key} must be a string")
    return value


def _option_name_from_payload(*, payload: object) -> OptionName:
    if isinstance(payload, str):
        name = OptionName.from_text(payload)
        if name is None:
            raise ModelFormatError(f"invalid option name: {payload!r}")
        return name
    if not isinstance(payload, dict):
        raise ModelFormatError("option names must be strings or objects")
    raw = _require_str(payload, "raw", where="option name")
    type_name = _require_str(payload, "type", where="option name")
    try:
        variant = OptionNameVariant[type_name]
    except KeyError as e:
        raise ModelFormatError(f"unknown option name type: {type_name!r}") from e
    return OptionName(raw=raw, variant=variant)


def _option_from_payload(*, payload: object) -> Option:
    if not isinstance(payload, dict):
        raise ModelFormatError("option must be an object")
    raw_names = payload.get("names")
    if not isinstance(raw_names, list):
        raise ModelFormatError("option.names must be an array")

    names: list[OptionName] = []
    seen: set[str] = set()
    for item in raw_names:
        name = _option_name_from_payload(payload=item)
        if name.raw in seen:
            continue
        seen.add(name.raw)
        bisect.insort(names, name)

    return Option(
        names=tuple(names),
        argument=_require_str(payload, "argument", where="option"),
        description=_require_str(payload, "description", where="option"),
    )


def command_from_payload(*, payload: object) -> Command:
    """Rebuild a command tree from `command_to_payload` output.

    Accepts both option name forms. Bare names are classified again; one that
    is not an option name fails the whole document with `ModelFormatError`.
    """
    if not isinstance(payload, dict):
        raise ModelFormatError("command must be an object")
    raw_options = payload.get("options")
    if not isinstance(raw_options, list):
        raise ModelFormatError("command.options must be an array")
    raw_subcommands = payload.get("subcommands")
    if raw_subcommands is None:
        raw_subcommands = []
    if not isinstance(raw_subcommands, list):
        raise ModelFormatError("command.subcommands must be an array")
    version = payload.get("version")
    if version is None:
        version = ""
    if not isinstance(version, str):
        raise ModelFormatError("command.version must be a string")

    return Command(
        name=_require_str(payload, "name", where="command"),
        description=_require_str(payload, "description", where="command"),
        usage=_require_str(payload, "usage", where="command"),
        options=tuple(_option_from_payload(payload=item) for item in raw_options),
        subcommands=tuple(
            command_from_payload(payload=item) for item in raw_subcommands
        ),
        version=version,
    )


def dumps_command(command: Command, *, legacy_names: bool = False) -> str:
    return json.dumps(
        command_to_payload(command, legacy_names=legacy_names),
        indent=2,
        ensure_ascii=False,
    )


def loads_command(text: str) -> Command:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ModelFormatError(f"invalid command JSON: {e}") from e
    return command_from_payload(payload=payload)
