""" Plots of dataframes annotated with the results of statistical tests, and
the categorical summaries used to label them.
"""
from .helpers import (ColumnNotFoundError, InvalidConfigurationError,
                      IncompatibleModelWarning)
from .catSummaries import (catCounter, catLabelDf, formatPValue,
                           pValueFormatter, groupedPropTest, facetLabelTable,
                           dfFacetLabel)
from .plotters import (plotScatterStats, plotGroupedScatterStats,
                       plotPieStats, plotBarStats, plotHistoStats,
                       paletteColours)
