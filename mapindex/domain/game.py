from __future__ import annotations

from enum import Enum, IntEnum


class GameRegion(IntEnum):
    US = 1
    EU = 2
    KR = 3
    CN = 5

    @property
    def depot_code(self) -> str:
        # Depot hosts are addressed by lower-case region code.
        return self.name.lower()


class GameLocale(str, Enum):
    deDE = "deDE"
    enGB = "enGB"
    esES = "esES"
    frFR = "frFR"
    itIT = "itIT"
    plPL = "plPL"
    ptPT = "ptPT"
    ruRU = "ruRU"
    zhCN = "zhCN"
    zhTW = "zhTW"
    koKR = "koKR"
    enSG = "enSG"
    enUS = "enUS"
    esMX = "esMX"
    ptBR = "ptBR"


class MapType(str, Enum):
    MELEE_MAP = "melee_map"
    ARCADE_MAP = "arcade_map"
    EXTENSION_MOD = "extension_mod"
    DEPENDENCY_MOD = "dependency_mod"


def region_code(region_id: int) -> str:
    return GameRegion(region_id).depot_code
