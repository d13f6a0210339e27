import re
from dataclasses import dataclass, field
from typing import Literal, Optional, Tuple

from .errors import InvalidFilenameError
from .validation import strip_extension, validate_filename

FIELD_DELIMITER = "__"

CATEGORY_NAMES = {
    "atm": "All The Mods",
    "allthemods": "All The Mods",
    "create": "Create",
    "stoneblock": "Stoneblock",
    "tekkit": "Tekkit",
    "sf": "SkyFactory",
    "skyfactory": "SkyFactory",
    "project_architect": "Project Architect",
    "ftb": "Feed The Beast",
    "fts": "Feed The Beast",
    "curs": "CurseForge",
    "technic": "Technic",
    "mojang": "Vanilla",
    "vanilla": "Vanilla",
    "tandem": "Custom",
    "mod": "Modded",
    "unknown": "Unknown",
}
OTHER_CATEGORY = "Other"

CATEGORY_DESCRIPTIONS = {
    "All The Mods": "A comprehensive modpack world with hundreds of mods for endless possibilities.",
    "Create": "An engineering-focused world featuring the Create mod for mechanical contraptions.",
    "Stoneblock": "A unique skyblock-style world where you start in a world of stone.",
    "Tekkit": "Classic tech-focused gameplay with industrial and automation mods.",
    "SkyFactory": "Sky-based survival with resource generation and automation.",
    "Project Architect": "A curated modpack focusing on building and automation.",
    "Feed The Beast": "A Feed The Beast modpack world.",
    "CurseForge": "A CurseForge modpack world.",
    "Technic": "A Technic platform modpack world.",
    "Vanilla": "An unmodded Minecraft world.",
}
DEFAULT_DESCRIPTION = "A custom Minecraft world with unique features and gameplay."

# keyword -> tag, checked against the lowercased filename in this order
TAG_KEYWORDS = (
    ("atm", "modded"),
    ("create", "engineering"),
    ("tech", "technology"),
    ("magic", "magic"),
    ("sky", "skyblock"),
    ("stone", "challenge"),
)

ACRONYMS = {"Atm": "ATM", "Sf": "SF", "Tts": "TTS", "Jei": "JEI"}

Naming = Literal["full", "short", "nonconforming"]


@dataclass(frozen=True)
class WorldMetadata:
    filename: str
    category: str
    category_name: str
    group: str
    world_name: str
    version: Optional[str]
    display_name: str
    description: str
    naming: Naming
    tags: Tuple[str, ...] = field(default_factory=tuple)


def category_name_for(token: str) -> str:
    key = token.lower()
    if key in CATEGORY_NAMES:
        return CATEGORY_NAMES[key]
    head = key.split("_", 1)[0]
    return CATEGORY_NAMES.get(head, OTHER_CATEGORY)


def display_name_for(world_name: str) -> str:
    name = world_name.replace("_", " ")
    name = re.sub(r"\b\w", lambda m: m.group(0).upper(), name)
    for search, replace in ACRONYMS.items():
        name = re.sub(rf"\b{search}\b", replace, name)
    return name.strip() or world_name


def tags_for(filename: str) -> Tuple[str, ...]:
    lowered = filename.lower()
    tags = []
    for keyword, tag in TAG_KEYWORDS:
        if keyword in lowered and tag not in tags:
            tags.append(tag)
    return tuple(tags)


def description_for(category_name: str, version: Optional[str]) -> str:
    text = CATEGORY_DESCRIPTIONS.get(category_name, DEFAULT_DESCRIPTION)
    if version:
        text += f" Version {version}."
    return text


def _split_fields(stem: str) -> Tuple[str, str, str, Optional[str], Naming]:
    parts = stem.split(FIELD_DELIMITER)

    if len(parts) >= 3:
        category, group, world_name = parts[0], parts[1], parts[2]
        version = parts[3] if len(parts) > 3 else None
        return category or "unknown", group or "unknown", world_name or "default", version or None, "full"

    if len(parts) == 2:
        head, world_name = parts
        category, sep, version = head.rpartition("_")
        if not sep:
            category, version = head, ""
        return category or "unknown", "default", world_name or "default", version or None, "short"

    return "unknown", "unknown", stem, None, "nonconforming"


def parse_filename(filename: str) -> WorldMetadata:
    """
    Decode an archive filename into world metadata.

    Accepted layouts, after the extension is stripped:
      category__group__world_name[__version]   ("full")
      category_version__world_name             ("short")
    Anything else is kept but marked "nonconforming".
    """
    if not validate_filename(filename):
        raise InvalidFilenameError("Invalid filename.")

    category, group, world_name, version, naming = _split_fields(strip_extension(filename))
    category_name = category_name_for(category)

    return WorldMetadata(
        filename=filename,
        category=category,
        category_name=category_name,
        group=group,
        world_name=world_name,
        version=version,
        display_name=display_name_for(world_name),
        description=description_for(category_name, version),
        naming=naming,
        tags=tags_for(filename),
    )
