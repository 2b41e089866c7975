"""Interval segmentation tables for the tram position feed.

Each (line, direction) table is the ordered list of interval-code groups the
feed reports, from the line-specific terminus to 健軍町. Groups alternate:
even positions are "at station" groups, odd positions are "between stations".

The tables are authored data. Up and down tables of the same line do not
share every boundary (codes 16-17, 52-53 and 99-100 sit in different groups),
and line B enters the shared corridor through the truncated group
``[27, 28, 29]``. Edit them by hand only; test_topology checks coverage and
parity after every change.
"""

from app.network.stations import Direction, Line

IntervalGroups = tuple[tuple[int, ...], ...]

A_UP: IntervalGroups = (
    (1,), (2, 3), (4,), (5, 6, 7), (8,), (9, 10, 11), (12,), (13, 14, 15), (16,), (17, 18, 19),
    (20,), (21, 22, 23), (24,), (25, 26, 27, 28, 29), (30,), (31, 32, 33), (34,), (35, 36, 37),
    (38,), (39, 40, 41), (42,), (43, 44), (45,), (46, 47, 48, 49, 50, 51, 52), (53,), (54, 55),
    (56,), (57, 58, 59, 60, 61, 62), (63,), (64, 65, 66, 67, 68), (69,), (70, 71, 72, 73),
    (74,), (75, 76, 77, 78, 79), (80,), (81, 82, 83), (84,), (85, 86, 87, 88, 89), (90,),
    (91, 92, 93, 94), (95,), (96, 97, 98, 99), (100,), (101, 102, 103, 104, 105, 106), (107,),
    (108, 109, 110), (111,), (112, 113, 114), (115,), (116, 117, 118, 119), (120,),
)

A_DOWN: IntervalGroups = (
    (1,), (2, 3), (4,), (5, 6, 7), (8,), (9, 10, 11), (12,), (13, 14, 15, 16), (17,), (18, 19),
    (20,), (21, 22, 23), (24,), (25, 26, 27, 28, 29), (30,), (31, 32, 33), (34,), (35, 36, 37),
    (38,), (39, 40, 41), (42,), (43, 44), (45,), (46, 47, 48, 49, 50, 51), (52,), (53, 54, 55),
    (56,), (57, 58, 59, 60, 61, 62), (63,), (64, 65, 66, 67, 68), (69,), (70, 71, 72, 73),
    (74,), (75, 76, 77, 78, 79), (80,), (81, 82, 83), (84,), (85, 86, 87, 88, 89), (90,),
    (91, 92, 93, 94), (95,), (96, 97, 98), (99,), (100, 101, 102, 103, 104, 105, 106), (107,),
    (108, 109, 110), (111,), (112, 113, 114), (115,), (116, 117, 118, 119), (120,),
)

# 上熊本 → 西辛島町, identical in both directions
B_PREFIX: IntervalGroups = (
    (201,), (202, 203), (204,), (205,), (206,), (207,), (208,), (209, 210, 211), (212,),
    (213, 214, 215), (216,), (217, 218, 219), (220,), (221, 222), (223,), (224, 225), (226,),
)

# 西辛島町 → 健軍町 as seen from line B; starts with the between group into 辛島町
B_SHARED_UP: IntervalGroups = (
    (27, 28, 29), (30,), (31, 32, 33), (34,), (35, 36, 37), (38,), (39, 40, 41), (42,),
    (43, 44), (45,), (46, 47, 48, 49, 50, 51, 52), (53,), (54, 55), (56,), (57, 58, 59, 60, 61, 62),
    (63,), (64, 65, 66, 67, 68), (69,), (70, 71, 72, 73), (74,), (75, 76, 77, 78, 79), (80,),
    (81, 82, 83), (84,), (85, 86, 87, 88, 89), (90,), (91, 92, 93, 94), (95,), (96, 97, 98, 99),
    (100,), (101, 102, 103, 104, 105, 106), (107,), (108, 109, 110), (111,), (112, 113, 114),
    (115,), (116, 117, 118, 119), (120,),
)

B_SHARED_DOWN: IntervalGroups = (
    (27, 28, 29), (30,), (31, 32, 33), (34,), (35, 36, 37), (38,), (39, 40, 41), (42,),
    (43, 44), (45,), (46, 47, 48, 49, 50, 51), (52,), (53, 54, 55), (56,), (57, 58, 59, 60, 61, 62),
    (63,), (64, 65, 66, 67, 68), (69,), (70, 71, 72, 73), (74,), (75, 76, 77, 78, 79), (80,),
    (81, 82, 83), (84,), (85, 86, 87, 88, 89), (90,), (91, 92, 93, 94), (95,), (96, 97, 98),
    (99,), (100, 101, 102, 103, 104, 105, 106), (107,), (108, 109, 110), (111,), (112, 113, 114),
    (115,), (116, 117, 118, 119), (120,),
)

SEGMENT_TABLES: dict[tuple[Line, Direction], IntervalGroups] = {
    (Line.A, Direction.UP): A_UP,
    (Line.A, Direction.DOWN): A_DOWN,
    (Line.B, Direction.UP): B_PREFIX + B_SHARED_UP,
    (Line.B, Direction.DOWN): B_PREFIX + B_SHARED_DOWN,
}
