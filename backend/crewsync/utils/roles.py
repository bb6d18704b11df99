"""
Rollenkatalog: feste Zuordnung Rollen-Code → Anzeigename, Farbe, Fixzahl.
Geschlossene Menge – jeder andere Code ist ein Fehler.
"""
from enum import Enum
from typing import NamedTuple

from crewsync.core.exceptions import UnknownRoleError


class RoleCode(str, Enum):
    CREW_CHIEF = "CC"
    STAGE_HAND = "SH"
    FORK_OPERATOR = "FO"
    REACH_FORK_OPERATOR = "RFO"
    RIGGER = "RG"
    GENERAL_LABOR = "GL"


class RoleInfo(NamedTuple):
    code: RoleCode
    name: str
    color: str
    fixed_count: int | None = None


ROLE_CATALOG: dict[RoleCode, RoleInfo] = {
    RoleCode.CREW_CHIEF:          RoleInfo(RoleCode.CREW_CHIEF, "Crew Chief", "purple", fixed_count=1),
    RoleCode.RIGGER:              RoleInfo(RoleCode.RIGGER, "Rigger", "red"),
    RoleCode.REACH_FORK_OPERATOR: RoleInfo(RoleCode.REACH_FORK_OPERATOR, "Reach Fork Operator", "yellow"),
    RoleCode.FORK_OPERATOR:       RoleInfo(RoleCode.FORK_OPERATOR, "Fork Operator", "green"),
    RoleCode.STAGE_HAND:          RoleInfo(RoleCode.STAGE_HAND, "Stage Hand", "blue"),
    RoleCode.GENERAL_LABOR:       RoleInfo(RoleCode.GENERAL_LABOR, "General Labor", "gray"),
}

# Sortierung für Anzeige und Ausgabe (CC zuerst)
ROLE_ORDER: list[RoleCode] = list(ROLE_CATALOG)


def parse_role(code: "str | RoleCode") -> RoleCode:
    if isinstance(code, RoleCode):
        return code
    try:
        return RoleCode(code)
    except ValueError:
        raise UnknownRoleError(code) from None


def describe(code: "str | RoleCode") -> RoleInfo:
    return ROLE_CATALOG[parse_role(code)]


def is_valid_role(code: object) -> bool:
    return isinstance(code, str) and code in RoleCode._value2member_map_


def sort_by_role(items: list, key=lambda item: item.role_code) -> list:
    return sorted(items, key=lambda item: ROLE_ORDER.index(parse_role(key(item))))
