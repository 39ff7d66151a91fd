"""
Nine-box talent grid.

Both axes are binned independently; the (performance, potential) pair is then
looked up in a fixed table. Swapping the table changes the labels without
touching the binning.
"""
import enum
from typing import Dict, Mapping, Optional, Tuple

from talentgrid.scoring.config import AxisThresholds, RatingConfig
from talentgrid.scoring.utils import to_decimal


class AxisBand(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NineBoxPosition(str, enum.Enum):
    STAR = "star"
    GROWTH_POTENTIAL = "growth_potential"
    POTENTIAL_GEM = "potential_gem"
    HIGH_PERFORMER = "high_performer"
    CORE_PLAYER = "core_player"
    INCONSISTENT = "inconsistent"
    TRUSTED_PROFESSIONAL = "trusted_professional"
    AVERAGE_PERFORMER = "average_performer"
    UNDERPERFORMER = "underperformer"
    UNCLASSIFIED = "unclassified"


# (performance band, potential band) -> position
DEFAULT_GRID: Dict[Tuple[AxisBand, AxisBand], NineBoxPosition] = {
    (AxisBand.HIGH, AxisBand.HIGH): NineBoxPosition.STAR,
    (AxisBand.MEDIUM, AxisBand.HIGH): NineBoxPosition.GROWTH_POTENTIAL,
    (AxisBand.LOW, AxisBand.HIGH): NineBoxPosition.POTENTIAL_GEM,
    (AxisBand.HIGH, AxisBand.MEDIUM): NineBoxPosition.HIGH_PERFORMER,
    (AxisBand.MEDIUM, AxisBand.MEDIUM): NineBoxPosition.CORE_PLAYER,
    (AxisBand.LOW, AxisBand.MEDIUM): NineBoxPosition.INCONSISTENT,
    (AxisBand.HIGH, AxisBand.LOW): NineBoxPosition.TRUSTED_PROFESSIONAL,
    (AxisBand.MEDIUM, AxisBand.LOW): NineBoxPosition.AVERAGE_PERFORMER,
    (AxisBand.LOW, AxisBand.LOW): NineBoxPosition.UNDERPERFORMER,
}

POSITION_LABELS: Dict[NineBoxPosition, str] = {
    NineBoxPosition.STAR: "Star",
    NineBoxPosition.GROWTH_POTENTIAL: "Growth Potential",
    NineBoxPosition.POTENTIAL_GEM: "Potential Gem",
    NineBoxPosition.HIGH_PERFORMER: "High Performer",
    NineBoxPosition.CORE_PLAYER: "Core Player",
    NineBoxPosition.INCONSISTENT: "Inconsistent",
    NineBoxPosition.TRUSTED_PROFESSIONAL: "Trusted Professional",
    NineBoxPosition.AVERAGE_PERFORMER: "Average Performer",
    NineBoxPosition.UNDERPERFORMER: "Underperformer",
    NineBoxPosition.UNCLASSIFIED: "Unclassified",
}

_BAND_INDEX = {AxisBand.LOW: 0, AxisBand.MEDIUM: 1, AxisBand.HIGH: 2}


def bin_value(value, thresholds: AxisThresholds) -> AxisBand:
    """A value exactly on a threshold belongs to the higher bin."""
    value = to_decimal(value)
    if value >= to_decimal(thresholds.high):
        return AxisBand.HIGH
    if value >= to_decimal(thresholds.medium):
        return AxisBand.MEDIUM
    return AxisBand.LOW


class NineBoxClassifier:
    def __init__(self, grid: Optional[Mapping[Tuple[AxisBand, AxisBand], NineBoxPosition]] = None) -> None:
        self.grid = dict(grid or DEFAULT_GRID)
        if len(self.grid) != 9:
            raise ValueError("A nine-box grid needs exactly nine cells")
        self._cells = {position: cell for cell, position in self.grid.items()}

    def classify(self, performance, potential, config: RatingConfig) -> NineBoxPosition:
        """Return the grid position, or UNCLASSIFIED when either axis has no value yet."""
        if performance is None or potential is None:
            return NineBoxPosition.UNCLASSIFIED
        perf_band = bin_value(performance, config.performance_axis)
        pot_band = bin_value(potential, config.potential_axis)
        return self.grid[(perf_band, pot_band)]

    def classify_rating(self, rating, config: RatingConfig) -> NineBoxPosition:
        return self.classify(rating.effective_score, rating.potential_score, config)

    def coordinates(self, position: NineBoxPosition) -> Optional[Tuple[int, int]]:
        """(performance column, potential row), each 0-2, or None when unclassified."""
        cell = self._cells.get(NineBoxPosition(position))
        if cell is None:
            return None
        return _BAND_INDEX[cell[0]], _BAND_INDEX[cell[1]]

    def quadrant_number(self, position: NineBoxPosition) -> Optional[int]:
        """Quadrants 1-9, row by row from low potential, column by column from low performance."""
        coords = self.coordinates(position)
        if coords is None:
            return None
        perf, pot = coords
        return pot * 3 + perf + 1


def potential_band(score, config: RatingConfig) -> Optional[str]:
    if score is None:
        return None
    return bin_value(score, config.potential_axis).value


default_classifier = NineBoxClassifier()
