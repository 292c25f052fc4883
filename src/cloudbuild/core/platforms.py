"""Build platform names and the shorthand aliases accepted on the command line."""

from __future__ import annotations

from types import MappingProxyType

from cloudbuild.core.exceptions import ValidationError

VALID_PLATFORMS = (
    "ios",
    "android",
    "webgl",
    "standaloneosxintel",
    "standaloneosxintel64",
    "standaloneosxuniversal",
    "standalonewindows",
    "standalonewindows64",
    "standalonelinux",
    "standalonelinux64",
    "standalonelinuxuniversal",
)

PLATFORM_SHORTHAND: MappingProxyType[str, str] = MappingProxyType(
    {
        "osx": "standaloneosxuniversal",
        "win": "standalonewindows",
        "win64": "standalonewindows64",
        "linux": "standalonelinuxuniversal",
        **{platform: platform for platform in VALID_PLATFORMS},
    }
)


def resolve_platform(name: str | None) -> str | None:
    """Expand a platform alias to its canonical name.

    Args:
        name: Alias or canonical platform name. Empty means "no filter".

    Returns:
        Canonical platform name, or None when no platform was given.

    Raises:
        ValidationError: If the alias is not recognized.
    """
    if not name:
        return None
    try:
        return PLATFORM_SHORTHAND[name]
    except KeyError:
        raise ValidationError(f"No such platform: {name}") from None
