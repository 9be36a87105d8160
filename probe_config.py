import json
import os
from dataclasses import dataclass, field, replace


# ================= DEFAULTS =================

DEFAULT_TIMEOUT_MS = 30000

# Layout-shift overlays are scaled against at least this viewport
SHIFT_VIEWPORT_WIDTH = 1920
SHIFT_VIEWPORT_HEIGHT = 1536

DELAY_METHODS = ("continue", "fulfill")

TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Config:
    """
    Settings for one page-load run and its report.

    Built once at process start (from the environment and/or argparse)
    and handed to whatever needs it.
    """
    timeout: int = DEFAULT_TIMEOUT_MS
    block: tuple = ()
    block_domains: tuple = ()
    delay: dict = field(default_factory=dict)
    delay_using: str = "continue"
    override_host: dict = field(default_factory=dict)
    debug: bool = False
    shift_viewport_width: int = SHIFT_VIEWPORT_WIDTH
    shift_viewport_height: int = SHIFT_VIEWPORT_HEIGHT

    def __post_init__(self):
        if self.delay_using not in DELAY_METHODS:
            raise ValueError(
                f"delay_using must be one of {DELAY_METHODS}, got {self.delay_using!r}"
            )

    @classmethod
    def from_env(cls, environ=None):
        environ = os.environ if environ is None else environ
        return cls(debug=environ.get("DEBUG_MODE", "").strip().lower() in TRUTHY)

    def with_args(self, args):
        """Overlay parsed argparse values that were actually supplied."""
        changes = {}

        for name in ("timeout", "delay_using"):
            value = getattr(args, name, None)
            if value:
                changes[name] = value

        if getattr(args, "debug", False):
            changes["debug"] = True

        if getattr(args, "block", None):
            changes["block"] = tuple(split_choices(args.block))
        if getattr(args, "block_domains", None):
            changes["block_domains"] = tuple(split_choices(args.block_domains))

        if getattr(args, "delay", None):
            changes["delay"] = parse_json_option("delay", args.delay)
        if getattr(args, "override_host", None):
            changes["override_host"] = parse_json_option("override_host", args.override_host)

        return replace(self, **changes)


def parse_json_option(name, raw):
    if isinstance(raw, dict):
        return raw
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f'Problem parsing "--{name}" option - {e}') from e
    if not isinstance(value, dict):
        raise ValueError(f'"--{name}" must be a JSON object')
    return value


def split_choices(choices):
    """
    Accept a list of option values that are either JSON arrays or
    comma separated strings and flatten them.
    """
    if isinstance(choices, str):
        choices = [choices]

    chosen = []
    for group in choices:
        if "[" in group:
            try:
                chosen.extend(json.loads(group))
            except json.JSONDecodeError as e:
                raise ValueError(f"Problem parsing {group!r} - {e}") from e
        else:
            chosen.extend(c for c in group.split(",") if c)
    return chosen
