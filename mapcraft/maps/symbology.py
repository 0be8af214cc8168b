"""
Symbology and styling module for map rendering.

This module handles colour palettes, choropleth classification methods and
proportional symbol sizing shared by the static, faceted and interactive
renderers.
"""

import numpy as np
import pandas as pd
from typing import List, Tuple, Dict, Any, Optional, Sequence
import matplotlib.pyplot as plt
import matplotlib.colors as mcolors
from matplotlib.ticker import MaxNLocator
import logging

from ..errors import InvalidReferenceError

logger = logging.getLogger(__name__)

# Fisher-Jenks is quadratic in the number of values; larger inputs are sampled
JENKS_SAMPLE_SIZE = 500


def is_categorical_series(series: pd.Series) -> bool:
    """True for label columns (strings, booleans, pandas categoricals)."""
    return (isinstance(series.dtype, pd.CategoricalDtype)
            or pd.api.types.is_object_dtype(series.dtype)
            or pd.api.types.is_string_dtype(series.dtype)
            or pd.api.types.is_bool_dtype(series.dtype))


def format_break(value: float) -> str:
    if float(value).is_integer():
        return f"{value:,.0f}"
    return f"{value:,.4g}"


class ColorSchemeManager:
    """Manages colour palettes for numeric and categorical symbology."""

    def __init__(self, sequential_palette: str = 'viridis', categorical_palette: str = 'tab20'):
        self.available_palettes = {
            'sequential': sequential_palette,
            'categorical': categorical_palette,
            'diverging': 'RdBu_r',
            'elevation': 'terrain'
        }

    def _resolve(self, palette: str) -> mcolors.Colormap:
        name = self.available_palettes.get(palette, palette)
        try:
            return plt.get_cmap(name)
        except ValueError as e:
            raise InvalidReferenceError(f"Unknown colour palette '{name}'") from e

    def get_color_palette(self, palette: str, n_colors: int = 5) -> List[str]:
        """
        Sample a continuous palette.

        Args:
            palette: Palette role ('sequential', 'diverging', ...) or any
                matplotlib colormap name
            n_colors: Number of colours

        Returns:
            List of hex colour codes, low to high
        """
        cmap = self._resolve(palette)
        if n_colors <= 1:
            return [mcolors.rgb2hex(cmap(0.5))]

        colors = [mcolors.rgb2hex(cmap(i / (n_colors - 1))) for i in range(n_colors)]

        logger.debug(f"Generated {n_colors} colors using {cmap.name}")
        return colors

    def get_categorical_colors(self, categories: Sequence[Any],
                               palette: str = 'categorical') -> Dict[Any, str]:
        """
        Assign one qualitative colour per category.

        Listed (qualitative) colormaps are cycled; continuous ones are sampled
        evenly.
        """
        cmap = self._resolve(palette)
        categories = list(categories)

        if isinstance(cmap, mcolors.ListedColormap) and cmap.N < 256:
            swatches = [mcolors.rgb2hex(c) for c in cmap.colors]
            colors = [swatches[i % len(swatches)] for i in range(len(categories))]
        else:
            colors = self.get_color_palette(palette, len(categories))

        return dict(zip(categories, colors))


class ClassificationEngine:
    """Implements choropleth classification methods."""

    def __init__(self):
        self.available_methods = [
            'jenks', 'quantile', 'equal_interval', 'standard_deviation', 'pretty', 'manual'
        ]

    def classify_data(self, values: np.ndarray, method: str = 'jenks',
                      n_classes: int = 5, manual_breaks: Optional[List[float]] = None) -> Tuple[np.ndarray, List[float]]:
        """
        Classify data using the specified method.

        Args:
            values: Array of values to classify (NaN allowed)
            method: Classification method
            n_classes: Number of classes (ignored for manual)
            manual_breaks: Break points for the manual method

        Returns:
            Tuple of (class_indices, class_breaks); missing values get index -1

        Raises:
            InvalidReferenceError: If the method is unknown or manual breaks are missing
        """
        if method == 'quantiles':
            method = 'quantile'
        if method not in self.available_methods:
            raise InvalidReferenceError(f"Method must be one of {self.available_methods}")

        values = np.asarray(values, dtype='float64')
        valid = values[np.isfinite(values)]
        if len(valid) == 0:
            return np.full(len(values), -1), []

        if method == 'jenks':
            class_breaks = self._jenks_breaks(valid, n_classes)
        elif method == 'quantile':
            class_breaks = self._quantile_breaks(valid, n_classes)
        elif method == 'equal_interval':
            class_breaks = self._equal_interval_breaks(valid, n_classes)
        elif method == 'standard_deviation':
            class_breaks = self._standard_deviation_breaks(valid, n_classes)
        elif method == 'pretty':
            class_breaks = self._pretty_breaks(valid, n_classes)
        else:
            if manual_breaks is None:
                raise InvalidReferenceError("Manual breaks required for manual classification")
            class_breaks = sorted(float(b) for b in manual_breaks)

        class_indices = self.assign_classes(values, class_breaks)
        logger.debug(f"{method} classification: {len(class_breaks) - 1} classes, breaks {class_breaks}")
        return class_indices, class_breaks

    def assign_classes(self, values: np.ndarray, class_breaks: List[float]) -> np.ndarray:
        """Index of the right-closed class each value falls in, -1 for missing."""
        values = np.asarray(values, dtype='float64')
        n_classes = max(len(class_breaks) - 1, 1)
        indices = np.digitize(values, class_breaks[1:-1], right=True)
        indices = np.clip(indices, 0, n_classes - 1)
        return np.where(np.isfinite(values), indices, -1)

    def _few_unique(self, values: np.ndarray, n_classes: int) -> Optional[List[float]]:
        unique = np.unique(values)
        if len(unique) > n_classes:
            return None
        if len(unique) == 1:
            return [float(unique[0]), float(unique[0])]
        # lowest value closes the first class on its own
        return [float(unique[0])] + [float(v) for v in unique]

    def _jenks_breaks(self, values: np.ndarray, n_classes: int) -> List[float]:
        """Fisher-Jenks natural breaks minimising within-class variance."""
        few = self._few_unique(values, n_classes)
        if few is not None:
            return few

        data = np.sort(values)
        if len(data) > JENKS_SAMPLE_SIZE:
            picks = np.linspace(0, len(data) - 1, JENKS_SAMPLE_SIZE).round().astype(int)
            data = data[picks]

        n, k = len(data), n_classes
        lower = np.zeros((n + 1, k + 1), dtype=int)
        variance = np.full((n + 1, k + 1), np.inf)
        lower[1, 1:] = 1
        variance[1, 1:] = 0.0

        for last in range(2, n + 1):
            s1 = s2 = 0.0
            for width in range(1, last + 1):
                first = last - width + 1
                value = data[first - 1]
                s1 += value
                s2 += value * value
                v = s2 - s1 * s1 / width
                if first > 1:
                    candidate = v + variance[first - 1, 1:k]
                    better = variance[last, 2:] >= candidate
                    variance[last, 2:][better] = candidate[better]
                    lower[last, 2:][better] = first
            lower[last, 1] = 1
            variance[last, 1] = v

        breaks = [0.0] * (k + 1)
        breaks[0], breaks[k] = float(data[0]), float(data[-1])
        end = n
        for cls in range(k, 1, -1):
            start = lower[end, cls]
            breaks[cls - 1] = float(data[start - 2])
            end = start - 1

        return breaks

    def _quantile_breaks(self, values: np.ndarray, n_classes: int) -> List[float]:
        """Equal-count classes."""
        quantiles = np.linspace(0, 100, n_classes + 1)
        return np.unique(np.percentile(values, quantiles)).tolist()

    def _equal_interval_breaks(self, values: np.ndarray, n_classes: int) -> List[float]:
        return np.linspace(values.min(), values.max(), n_classes + 1).tolist()

    def _standard_deviation_breaks(self, values: np.ndarray, n_classes: int) -> List[float]:
        """Breaks at whole standard deviations around the mean."""
        mean_val = values.mean()
        std_val = values.std()
        if std_val == 0:
            return [float(mean_val), float(mean_val)]

        half_classes = n_classes // 2
        class_breaks = [mean_val + i * std_val for i in range(-half_classes, half_classes + 1)]

        # Ensure breaks cover data range
        class_breaks[0] = min(class_breaks[0], values.min())
        class_breaks[-1] = max(class_breaks[-1], values.max())

        return sorted(float(b) for b in class_breaks)

    def _pretty_breaks(self, values: np.ndarray, n_classes: int) -> List[float]:
        """Round-number breaks covering the data range."""
        vmin, vmax = float(values.min()), float(values.max())
        if vmin == vmax:
            return [vmin, vmax]
        ticks = MaxNLocator(nbins=n_classes).tick_values(vmin, vmax)
        ticks = [float(t) for t in ticks]
        while len(ticks) > 2 and ticks[1] <= vmin:
            ticks.pop(0)
        while len(ticks) > 2 and ticks[-2] >= vmax:
            ticks.pop()
        return ticks


class StyleCalculator:
    """Calculates proportional symbol sizes."""

    def __init__(self, size_range: Tuple[float, float] = (10, 400)):
        self.default_size_range = tuple(size_range)

    def calculate_symbol_sizes(self, values: np.ndarray, size_range: Optional[Tuple[float, float]] = None,
                               domain: Optional[Tuple[float, float]] = None,
                               mapping_type: str = 'linear') -> List[float]:
        """
        Map values onto marker areas.

        Args:
            values: Array of values (NaN gets the smallest size)
            size_range: Tuple of (min_area, max_area) in points squared
            domain: Value range mapped onto size_range; defaults to the data
                range, pass a shared domain to keep several panels comparable
            mapping_type: 'linear' (area proportional to value), 'sqrt' or 'log'

        Returns:
            List of marker areas
        """
        if size_range is None:
            size_range = self.default_size_range

        values = np.asarray(values, dtype='float64')
        if len(values) == 0:
            return []

        if mapping_type == 'log':
            transform = np.log1p
        elif mapping_type == 'sqrt':
            transform = np.sqrt
        else:
            transform = np.asarray

        if domain is None:
            finite = values[np.isfinite(values)]
            domain = (finite.min(), finite.max()) if len(finite) else (0.0, 1.0)

        low, high = transform(np.asarray(domain, dtype='float64'))
        transformed = transform(np.where(np.isfinite(values), values, domain[0]))
        if high == low:
            sizes = np.full(len(values), float(np.mean(size_range)))
        else:
            sizes = np.interp(transformed, [low, high], size_range)

        logger.debug(f"Calculated symbol sizes: {sizes.min():.1f} to {sizes.max():.1f}")
        return sizes.tolist()


class SymbologyEngine:
    """Main interface for symbology operations."""

    def __init__(self, classification_settings: Optional[Dict[str, Any]] = None,
                 size_range: Tuple[float, float] = (10, 400)):
        settings = classification_settings or {}
        self.settings = settings
        self.color_manager = ColorSchemeManager(
            settings.get('sequential_palette', 'viridis'),
            settings.get('categorical_palette', 'tab20')
        )
        self.classifier = ClassificationEngine()
        self.style_calculator = StyleCalculator(size_range)
        self.missing_color = settings.get('missing_color', '#d3d3d3')

    def create_symbology(self, data: pd.DataFrame, column: str,
                         config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Create complete colour symbology for one attribute column.

        Args:
            data: DataFrame with data to symbolize
            column: Attribute column to colour by
            config: Optional overrides: 'style', 'n_classes', 'palette',
                'breaks' (manual), 'title'

        Returns:
            Dictionary with per-feature 'colors', 'class_breaks',
            'class_indices', 'categorical' and a 'legend_config' holding
            title, labels and colours

        Raises:
            InvalidReferenceError: If the column is not in data
        """
        if column not in data.columns:
            raise InvalidReferenceError(f"Column {column} not found in data")

        config = config or {}
        series = data[column]
        title = config.get('title') or column

        if is_categorical_series(series):
            symbology = self._categorical_symbology(series, config.get('palette') or 'categorical')
        else:
            symbology = self._numeric_symbology(series, config)

        symbology['legend_config']['title'] = title
        if series.isna().any():
            symbology['legend_config']['labels'].append('Missing')
            symbology['legend_config']['colors'].append(self.missing_color)

        logger.info(f"Created symbology for {len(data)} features using {column}")
        return symbology

    def _numeric_symbology(self, series: pd.Series, config: Dict[str, Any]) -> Dict[str, Any]:
        style = config.get('style') or self.settings.get('style', 'jenks')
        n_classes = config.get('n_classes') or self.settings.get('n_classes', 5)
        palette = config.get('palette') or 'sequential'

        values = series.to_numpy(dtype='float64', na_value=np.nan)
        class_indices, class_breaks = self.classifier.classify_data(
            values, style, n_classes, config.get('breaks')
        )

        n_actual = max(len(class_breaks) - 1, 1)
        palette_colors = self.color_manager.get_color_palette(palette, n_actual)
        colors = [palette_colors[i] if i >= 0 else self.missing_color for i in class_indices]

        labels = [
            f"{format_break(lo)} to {format_break(hi)}"
            for lo, hi in zip(class_breaks[:-1], class_breaks[1:])
        ]

        return {
            'colors': colors,
            'class_breaks': class_breaks,
            'class_indices': class_indices,
            'categorical': False,
            'legend_config': {
                'labels': labels,
                'colors': palette_colors[:len(labels)],
            }
        }

    def _categorical_symbology(self, series: pd.Series, palette: str) -> Dict[str, Any]:
        if isinstance(series.dtype, pd.CategoricalDtype):
            categories = list(series.cat.categories)
        else:
            categories = sorted(series.dropna().unique(), key=str)

        category_colors = self.color_manager.get_categorical_colors(categories, palette)
        colors = [category_colors.get(v, self.missing_color) if pd.notna(v) else self.missing_color
                  for v in series]
        index = {category: i for i, category in enumerate(categories)}

        return {
            'colors': colors,
            'class_breaks': [],
            'class_indices': np.array([index.get(v, -1) if pd.notna(v) else -1 for v in series]),
            'categorical': True,
            'legend_config': {
                'labels': [str(c) for c in categories],
                'colors': [category_colors[c] for c in categories],
            }
        }

    def classify_and_color_data(self, values, palette: str = 'sequential', method: str = 'jenks',
                                n_classes: int = 5) -> Tuple[List[float], List[str]]:
        """
        Convenience method to classify values and get the class colours.

        Returns:
            Tuple of (class_breaks, colors)
        """
        _, class_breaks = self.classifier.classify_data(np.asarray(values), method, n_classes)
        colors = self.color_manager.get_color_palette(palette, max(len(class_breaks) - 1, 1))
        return class_breaks, colors
