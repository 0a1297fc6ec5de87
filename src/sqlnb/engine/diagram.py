"""PlantUML information-engineering (IE) diagrams of table definitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable

ONE_TO_MANY = "|o..o{"

DEFAULT_SKINPARAMS: tuple[str, ...] = (
    "skinparam linetype ortho",
    "skinparam roundcorner 20",
    "skinparam class {",
    "  BackgroundColor White",
    "  ArrowColor Silver",
    "  BorderColor Silver",
    "  FontColor Black",
    "  FontSize 12",
    "}",
)


@dataclass(frozen=True)
class EntityAttribute:
    name: str
    type: str
    primary_key: bool = False
    required: bool = False
    description: str = ""


@dataclass(frozen=True)
class Relation:
    """``source.column`` references ``target.target_column``."""

    source: str
    column: str
    target: str
    target_column: str
    cardinality: str = ONE_TO_MANY


@dataclass(frozen=True)
class EntityDefinition:
    name: str
    attributes: tuple[EntityAttribute, ...] = ()
    relations: tuple[Relation, ...] = ()


@dataclass
class DiagramOptions:
    diagram_name: str = "IE"
    skinparams: tuple[str, ...] = DEFAULT_SKINPARAMS
    include_entity: Callable[[EntityDefinition], bool] | None = None
    include_relations: bool = True
    title: str | None = None
    extra: list[str] = field(default_factory=list)


def _entity_lines(entity: EntityDefinition) -> list[str]:
    lines = [f'  entity "{entity.name}" as {entity.name} {{']
    keys = [a for a in entity.attributes if a.primary_key]
    others = [a for a in entity.attributes if not a.primary_key]
    for attr in keys:
        lines.append(f"    * **{attr.name}**: {attr.type}")
    if keys:
        lines.append("    --")
    for attr in others:
        marker = "*" if attr.required else " "
        lines.append(f"    {marker} {attr.name}: {attr.type}")
    lines.append("  }")
    return lines


def plantuml_ie(entities: Iterable[EntityDefinition], options: DiagramOptions | None = None) -> str:
    """Render entities and their relations as a PlantUML IE diagram.

    Entities appear in the order given. Relations are drawn only when both
    ends are part of the diagram.
    """
    options = options or DiagramOptions()
    included = [
        e for e in entities
        if options.include_entity is None or options.include_entity(e)
    ]
    names = {e.name for e in included}

    lines: list[str] = [f"@startuml {options.diagram_name}", "  hide circle"]
    if options.title:
        lines.append(f"  title {options.title}")
    lines.extend(f"  {param}" for param in options.skinparams)
    lines.extend(f"  {line}" for line in options.extra)

    for entity in included:
        lines.append("")
        lines.extend(_entity_lines(entity))

    if options.include_relations:
        relations = [
            r for e in included for r in e.relations
            if r.source in names and r.target in names
        ]
        if relations:
            lines.append("")
        for relation in relations:
            lines.append(f"  {relation.target} {relation.cardinality} {relation.source}")

    lines.append("@enduml")
    return "\n".join(lines)
