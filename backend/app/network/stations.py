"""Station master data for the Kumamoto City tram network.

Line A runs 田崎橋 ⇔ 健軍町 and line B runs 上熊本 ⇔ 健軍町. Both lines
merge at 辛島町 and share the corridor to 健軍町.

Direction is relative to each line's own orientation:
- up (flag 0): toward 田崎橋 (A) or 上熊本 (B)
- down (flag 1): toward the shared terminus 健軍町
"""

import enum
from dataclasses import dataclass


class Line(str, enum.Enum):
    """Tram line ("rosen" in the position feed)."""

    A = "A"
    B = "B"


class Direction(str, enum.Enum):
    """Travel direction relative to a line's canonical order."""

    UP = "up"
    DOWN = "down"

    @classmethod
    def from_flag(cls, flag: int) -> "Direction":
        """
        Translate the feed's direction flag ("us") to a Direction.

        Example:
            >>> Direction.from_flag(0)
            <Direction.UP: 'up'>
            >>> Direction.from_flag(1)
            <Direction.DOWN: 'down'>
        """
        if flag == 0:
            return cls.UP
        if flag == 1:
            return cls.DOWN
        msg = f"Unknown direction flag: {flag!r}"
        raise ValueError(msg)

    @property
    def flag(self) -> int:
        """Direction flag as used by the position feed."""
        return 0 if self == Direction.UP else 1


@dataclass(frozen=True, slots=True)
class Station:
    """A tram stop. Immutable reference data."""

    id: int
    name: str
    name_kana: str
    lines: frozenset[Line]

    def serves(self, line: Line) -> bool:
        """Check whether the station is on the given line."""
        return line in self.lines


_A = frozenset({Line.A})
_B = frozenset({Line.B})
_AB = frozenset({Line.A, Line.B})

STATIONS: tuple[Station, ...] = (
    # Line A only (田崎橋 → 辛島町)
    Station(1, "田崎橋", "たさきばし", _A),
    Station(2, "二本木口", "にほんぎぐち", _A),
    Station(3, "熊本駅前", "くまもとえきまえ", _A),
    Station(4, "祇園橋", "ぎおんばし", _A),
    Station(5, "呉服町", "ごふくまち", _A),
    Station(6, "河原町", "かわらまち", _A),
    Station(7, "慶徳校前", "けいとくこうまえ", _A),
    # Line B only (上熊本 → 辛島町)
    Station(21, "上熊本", "かみくまもと", _B),
    Station(22, "県立体育館前", "けんりつたいいくかんまえ", _B),
    Station(23, "本妙寺入口", "ほんみょうじいりぐち", _B),
    Station(24, "杉塘", "すぎども", _B),
    Station(25, "段山町", "だにやままち", _B),
    Station(26, "蔚山町", "うるさんまち", _B),
    Station(27, "新町", "しんまち", _B),
    Station(28, "洗馬橋", "せんばばし", _B),
    Station(29, "西辛島町", "にしからしままち", _B),
    # Shared corridor (辛島町 → 健軍町)
    Station(8, "辛島町", "からしままち", _AB),
    Station(9, "花畑町", "はなばたちょう", _AB),
    Station(10, "熊本城・市役所前", "くまもとじょう・しやくしょまえ", _AB),
    Station(11, "通町筋", "とおりちょうすじ", _AB),
    Station(12, "水道町", "すいどうちょう", _AB),
    Station(13, "九品寺交差点", "くほんじこうさてん", _AB),
    Station(14, "交通局前", "こうつうきょくまえ", _AB),
    Station(15, "味噌天神前", "みそてんじんまえ", _AB),
    Station(16, "新水前寺駅前", "しんすいぜんじえきまえ", _AB),
    Station(17, "国府", "こくふ", _AB),
    Station(18, "水前寺公園", "すいぜんじこうえん", _AB),
    Station(19, "市立体育館前", "しりつたいいくかんまえ", _AB),
    Station(20, "商業高校前", "しょうぎょうこうこうまえ", _AB),
    Station(30, "八丁馬場", "はっちょうばば", _AB),
    Station(31, "神水交差点", "くわみずこうさてん", _AB),
    Station(32, "健軍校前", "けんぐんこうまえ", _AB),
    Station(33, "動植物園入口", "どうしょくぶつえんいりぐち", _AB),
    Station(34, "健軍町", "けんぐんまち", _AB),
)

_SHARED_CORRIDOR: tuple[int, ...] = (8, 9, 10, 11, 12, 13, 14, 15, 16, 17, 18, 19, 20, 30, 31, 32, 33, 34)

# Canonical order per line: line-specific terminus first, 健軍町 last
STATION_ORDERS: dict[Line, tuple[int, ...]] = {
    Line.A: (1, 2, 3, 4, 5, 6, 7, *_SHARED_CORRIDOR),
    Line.B: (21, 22, 23, 24, 25, 26, 27, 28, 29, *_SHARED_CORRIDOR),
}

SHARED_TERMINUS_ID = 34

_STATIONS_BY_ID: dict[int, Station] = {station.id: station for station in STATIONS}


def get_station(station_id: int) -> Station | None:
    """Look up a station by id."""
    return _STATIONS_BY_ID.get(station_id)


def get_station_by_name(name: str) -> Station | None:
    """Look up a station by its display name or kana reading."""
    needle = name.strip()
    for station in STATIONS:
        if needle in (station.name, station.name_kana):
            return station
    return None


def stations_for_line(line: Line) -> list[Station]:
    """Stations served by a line, in canonical order."""
    return [_STATIONS_BY_ID[station_id] for station_id in STATION_ORDERS[line]]


def terminus_name(line: Line, direction: Direction) -> str:
    """
    Name of the terminus a tram on this line is heading to.

    Example:
        >>> terminus_name(Line.B, Direction.UP)
        '上熊本'
        >>> terminus_name(Line.A, Direction.DOWN)
        '健軍町'
    """
    order = STATION_ORDERS[line]
    terminus_id = order[-1] if direction == Direction.DOWN else order[0]
    return _STATIONS_BY_ID[terminus_id].name


def direction_label(station: Station, direction: Direction) -> str:
    """
    Human label for a direction at a given station, e.g. "健軍町方面".

    Shared-corridor stations are served by both lines, so "up" from there has
    two possible termini; those get the generic "始発方面" label.
    """
    if direction == Direction.DOWN:
        return f"{_STATIONS_BY_ID[SHARED_TERMINUS_ID].name}方面"
    if len(station.lines) == 1:
        (line,) = station.lines
        return f"{terminus_name(line, Direction.UP)}方面"
    return "始発方面"
