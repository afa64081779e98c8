"""Deck loader - YAML serialization and deserialization for DeckSchema.

Provides round-trip save/load so decks can be reviewed, version-controlled,
and edited as human-readable YAML files.
"""

from pathlib import Path

import yaml

from .models import DeckSchema


class _BlockDumper(yaml.SafeDumper):
    """Writes multi-line strings (cell sources) as literal blocks."""


def _str_representer(dumper, value):
    style = "|" if "\n" in value else None
    return dumper.represent_scalar("tag:yaml.org,2002:str", value, style=style)


_BlockDumper.add_representer(str, _str_representer)


def dump_deck(deck: DeckSchema) -> str:
    """Serialize a DeckSchema to a YAML string."""
    return yaml.dump(deck.to_dict(), Dumper=_BlockDumper, default_flow_style=False,
                     sort_keys=False, allow_unicode=True, width=120)


def save_deck(deck: DeckSchema, path: str | Path) -> None:
    """Serialize a DeckSchema to a YAML file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write(dump_deck(deck))


def load_deck(path: str | Path) -> DeckSchema:
    """Deserialize a DeckSchema from a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file does not hold a deck mapping.
    """
    path = Path(path)
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict) or "name" not in data:
        raise ValueError(f"{path} does not contain a deck definition")
    return DeckSchema.from_dict(data)
