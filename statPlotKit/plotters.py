""" Plots annotated with the results of statistical tests.

Each public plot function validates its options, runs the relevant test from
statTests, and then uses one of the Plotter classes to draw onto matplotlib
axes. All options that only accept a closed set of values are normalised with
config.normaliseOption before any computation is done, so that bad options
fail fast.
"""
import re
import logging
import warnings
import numpy as np
import pandas as pd
import matplotlib
import matplotlib.pyplot as plt
import matplotlib.colors as pltColours
import matplotlib.patches as mplPatches
import matplotlib.ticker as mplTicker
import seaborn as sns
import statsmodels.formula.api as smf
from statsmodels.nonparametric.smoothers_lowess import lowess
from . import helpers
from . import statTests
from . import catSummaries
from .config import (StatType, Centrality, MarginalType, Margins, Output,
                     normaliseOption)
from . import config

logger = logging.getLogger(__name__)


def _makeCarefulProperty(name: str, keys: list[str] = None):
    """ Make a property which can only be used in a specific way without
    an error being raised. Specifically, the property will raise an
    error if...
        - Called before being set
        - Set again after already being set
        - Called but the keys of the returned dict don't match the
        input 'keys' (if keys is provided as an input)

    INPUT
    name: str. Name to use for the underying attribute. A '_' will be
        prepended.
    keys: list[str]. Optional. The keys that expect in the dict returned
        when calling this property.
    """
    attrName = '_'+name

    @property
    def thisProp(self):
        value = getattr(self, attrName, None)
        if value is None:
            raise ValueError(f'The {name} attribute has not yet been set.')
        if (keys is not None) and (set(value.keys()) != set(keys)):
            raise ValueError(f'The {name} attribute does not have the '+
                                'expected keys.')
        return value

    @thisProp.setter
    def thisProp(self, value):
        oldValue = getattr(self, attrName, None)
        if oldValue is not None:
            raise ValueError(f'The {name} attribute cannot be set twice.')
        if (keys is not None) and (set(value.keys()) != set(keys)):
            raise ValueError(f'The {name} attribute does not have the '+
                                'expected keys.')
        setattr(self, attrName, value)

    return thisProp


class Plotter():
    """ Stores and plots the data for one subplot.

    ATTRIBUTES
    axisLabels: dict. Stores the labels for the x- and y-axes.
    titles: dict. Stores the title, subtitle and caption text. Any of these
        may be None.
    ax: None | axis. Once plotting is performed, the axis used is stored here.
    """
    axisLabels = _makeCarefulProperty('axisLabels', ['xLabel', 'yLabel'])
    titles = _makeCarefulProperty('titles', ['title', 'subtitle', 'caption'])

    def __init__(self, xLabel=None, yLabel=None,
                 title=None, subtitle=None, caption=None) -> None:
        """
        INPUT
        xLabel: str | None. Axis label.
        yLabel: str | None. Axis label.
        title: str | None. Text for the figure title.
        subtitle: str | None. Text shown above the plot, e.g. the results of
            a statistical test.
        caption: str | None. Text shown in the bottom right of the figure.
        """
        self.axisLabels = {'xLabel': xLabel, 'yLabel': yLabel}
        self.titles = {'title': title, 'subtitle': subtitle,
                       'caption': caption}
        self.ax = None


    def plot(self, ax):
        """ Make the subplot.

        INPUT
        ax: Axis to plot onto
        """
        raise NotImplementedError


    def addAxisLabels(self, ax):
        """ Add the stored axis labels to a specified axis. """
        if self.axisLabels['xLabel'] is not None:
            ax.set_xlabel(self.axisLabels['xLabel'])
        if self.axisLabels['yLabel'] is not None:
            ax.set_ylabel(self.axisLabels['yLabel'])


    def addTitles(self, fig, topAx=None):
        """ Add the title and caption to a figure, and the subtitle to the
        uppermost axis.

        INPUT
        fig: matplotlib Figure or SubFigure.
        topAx: None | axis. If None, the subtitle is added below the title
            as part of the figure title.
        """
        title = self.titles['title']
        subtitle = self.titles['subtitle']
        if topAx is None:
            lines = [txt for txt in [title, subtitle] if txt is not None]
            if lines:
                fig.suptitle('\n'.join(lines), fontsize=10)
        else:
            if title is not None:
                fig.suptitle(title, fontweight='bold')
            if subtitle is not None:
                topAx.set_title(subtitle, loc='left', fontsize=9)

        if self.titles['caption'] is not None:
            fig.supxlabel(self.titles['caption'], x=0.98, ha='right',
                          fontsize=8)


class ScatterPlotter(Plotter):
    """ Scatterplot of two numeric variables with a fitted smoother.

    ATTRIBUTES
    data: dataframe. Complete cases of the plotted variables.
    x, y: str. Names of the plotted columns.
    xPos, yPos: 1D arrays. Plotted (possibly jittered) positions.
    labelMask: None | 1D boolean array. Points to label.
    aes: dict. Aesthetics and smoother settings, as given to the constructor.
    """

    def __init__(self, data, x, y, aes, labelVar=None, labelMask=None,
                 xLabel=None, yLabel=None, title=None, subtitle=None,
                 caption=None):
        """
        INPUT
        data: dataframe. Rows with missing x or y should already be removed.
        x, y: str. Columns to plot.
        aes: dict. Keys are...
            pointColour, pointSize, pointAlpha: Aesthetics of the points.
            widthJitter, heightJitter: scalar. Maximum jitter added to each
                point in data units.
            method, formula, methodArgs, confLevel: Smoother specification.
                See fitSmoother.
            lineSize, lineColour: Aesthetics of the smoother.
            centrality: Centrality.
            xFill, yFill: str. Colours for the centrality lines.
            axesRangeRestrict: bool. If true, the axes are cut at the minimum
                and maximum data values.
        labelVar: None | str. Column giving the text of the point labels.
        labelMask: None | 1D boolean array. Which points to label. All
            points are labelled if labelVar is given and this is None.
        """
        super().__init__(xLabel, yLabel, title, subtitle, caption)
        self.data = data
        self.x = x
        self.y = y
        self.aes = aes
        self.labelVar = labelVar
        if (labelVar is not None) and (labelMask is None):
            labelMask = np.ones(len(data), dtype=bool)
        self.labelMask = labelMask

        rng = np.random.default_rng(config.JITTER_SEED)
        self.xPos = data[x].to_numpy(dtype=float) + rng.uniform(
            -aes['widthJitter'], aes['widthJitter'], size=len(data))
        self.yPos = data[y].to_numpy(dtype=float) + rng.uniform(
            -aes['heightJitter'], aes['heightJitter'], size=len(data))


    def plot(self, ax):
        """ Make the subplot.

        INPUT
        ax: Axis to plot onto
        """
        aes = self.aes
        xVals = self.data[self.x].to_numpy(dtype=float)
        yVals = self.data[self.y].to_numpy(dtype=float)

        ax.scatter(self.xPos, self.yPos, c=aes['pointColour'],
                   s=aes['pointSize']**2 * 4, alpha=aes['pointAlpha'],
                   linewidths=0)

        xFit, yFit, lower, upper = fitSmoother(
            xVals, yVals, method=aes['method'], formula=aes['formula'],
            methodArgs=aes['methodArgs'], confLevel=aes['confLevel'])
        ax.plot(xFit, yFit, color=aes['lineColour'],
                linewidth=aes['lineSize'])
        if lower is not None:
            ax.fill_between(xFit, lower, upper, color='grey', alpha=0.3,
                            linewidth=0)

        addCentralityLines(ax, xVals, yVals, aes['centrality'],
                           aes['xFill'], aes['yFill'])

        if aes['axesRangeRestrict']:
            ax.set_xlim(np.min(xVals), np.max(xVals))
            ax.set_ylim(np.min(yVals), np.max(yVals))

        if self.labelVar is not None:
            addPointLabels(ax, self.xPos[self.labelMask],
                           self.yPos[self.labelMask],
                           self.data.loc[self.labelMask, self.labelVar])

        self.addAxisLabels(ax)
        applyDefaultAxisProperties(ax)
        self.ax = ax


class PiePlotter(Plotter):
    """ Pie chart of the counts of each level of a categorical variable.

    ATTRIBUTES
    counts: dataframe. Output of catCounter/catLabelDf for a single pie.
    main: str. Name of the column giving the slices.
    colours: dict. Maps each level of main to a colour.
    facetTitle: None | str. Title for this pie.
    """

    def __init__(self, counts, main, colours, facetTitle=None,
                 title=None, subtitle=None, caption=None):
        super().__init__(None, None, title, subtitle, caption)
        helpers.checkColumns(counts, [main, 'counts', 'sliceLabel'])
        self.counts = counts
        self.main = main
        self.colours = colours
        self.facetTitle = facetTitle


    def plot(self, ax):
        """ Make the subplot.

        INPUT
        ax: Axis to plot onto
        """
        sliceColours = [self.colours[level] for level in self.counts[self.main]]
        wedges, _ = ax.pie(self.counts['counts'],
                           labels=self.counts['sliceLabel'],
                           colors=sliceColours,
                           startangle=90, counterclock=False,
                           labeldistance=0.6,
                           textprops={'ha': 'center', 'va': 'center',
                                      'fontsize': 8},
                           wedgeprops={'edgecolor': 'black',
                                       'linewidth': 0.5})
        assert len(wedges) == len(self.counts)
        if self.facetTitle is not None:
            ax.set_title(self.facetTitle, fontsize=9)
        self.ax = ax


class BarPlotter(Plotter):
    """ Stacked percentage bar chart, with one bar for each level of a
    condition variable.

    ATTRIBUTES
    counts: dataframe. Output of catLabelDf, with percentages computed within
        each level of condition.
    main, condition: str. Names of the columns.
    colours: dict. Maps each level of main to a colour.
    facetLabels: None | dataframe. Output of dfFacetLabel, used to annotate
        each bar.
    """

    def __init__(self, counts, main, condition, colours, facetLabels=None,
                 xLabel=None, yLabel='percent', title=None, subtitle=None,
                 caption=None):
        super().__init__(xLabel, yLabel, title, subtitle, caption)
        helpers.checkColumns(counts, [main, condition, 'perc', 'sliceLabel'])
        self.counts = counts
        self.main = main
        self.condition = condition
        self.colours = colours
        self.facetLabels = facetLabels


    def plot(self, ax):
        """ Make the subplot.

        INPUT
        ax: Axis to plot onto
        """
        counts = self.counts
        condLevels = sortedLevels(counts[self.condition])
        xPos = {level: iLevel for iLevel, level in enumerate(condLevels)}

        bottoms = np.zeros(len(condLevels))
        for mainLevel in self.colours.keys():
            thisMain = counts.loc[counts[self.main] == mainLevel, :]
            if len(thisMain) == 0:
                continue
            heights = np.zeros(len(condLevels))
            labels = [None] * len(condLevels)
            for _, row in thisMain.iterrows():
                heights[xPos[row[self.condition]]] = row['perc']
                labels[xPos[row[self.condition]]] = row['sliceLabel']

            ax.bar(np.arange(len(condLevels)), heights, bottom=bottoms,
                   color=self.colours[mainLevel], edgecolor='black',
                   linewidth=0.5, label=str(mainLevel))
            for iBar, thisLabel in enumerate(labels):
                if thisLabel is None:
                    continue
                ax.text(iBar, bottoms[iBar] + heights[iBar]/2, thisLabel,
                        ha='center', va='center', fontsize=8,
                        bbox={'boxstyle': 'round,pad=0.2', 'fc': 'white',
                              'alpha': 0.8})
            bottoms = bottoms + heights

        tickLabels = [str(level) for level in condLevels]
        if self.facetLabels is not None:
            for _, row in self.facetLabels.iterrows():
                if row[self.condition] not in xPos:
                    continue
                iBar = xPos[row[self.condition]]
                ax.text(iBar, 101, row['mathLabel'], ha='center',
                        va='bottom', fontsize=7)
                tickLabels[iBar] = f'{tickLabels[iBar]}\n{row["N"]}'

        ax.set_xticks(np.arange(len(condLevels)))
        ax.set_xticklabels(tickLabels)
        ax.set_ylim(0, 110)
        ax.set_yticks(np.arange(0, 101, 25))
        ax.yaxis.set_major_formatter(
            mplTicker.PercentFormatter(xmax=100))
        ax.legend(frameon=False, loc='center left', bbox_to_anchor=(1, 0.5),
                  title=self.main)
        self.addAxisLabels(ax)
        applyDefaultAxisProperties(ax)
        self.ax = ax


class HistoPlotter(Plotter):
    """ Histogram of a single numeric variable.

    ATTRIBUTES
    vals: 1D array. Data to plot, without missing values.
    aes: dict. Aesthetics, as given to the constructor.
    """

    def __init__(self, vals, aes, xLabel=None, yLabel='count', title=None,
                 subtitle=None, caption=None):
        """
        INPUT
        vals: 1D array. Values to plot.
        aes: dict. Keys are...
            bins: int | str. Passed to matplotlib hist.
            barFill: str. Colour of the bars.
            alpha: scalar. Transparency of the bars.
            centrality: Centrality.
            centralityColour: str. Colour of the centrality line.
            testValue: scalar.
            testValueLine: bool. If true, add a line at testValue.
        """
        super().__init__(xLabel, yLabel, title, subtitle, caption)
        self.vals = vals
        self.aes = aes


    def plot(self, ax):
        """ Make the subplot.

        INPUT
        ax: Axis to plot onto
        """
        aes = self.aes
        ax.hist(self.vals, bins=aes['bins'], color=aes['barFill'],
                alpha=aes['alpha'], edgecolor='black', linewidth=0.5)

        centrality = aes['centrality']
        if centrality != Centrality.NONE:
            centre = centralityFun(centrality)(self.vals)
            addLabelledVLine(ax, centre,
                             f'{centrality.value} = '+
                             helpers.specifyDecimal(centre, 2),
                             aes['centralityColour'])
        if aes['testValueLine']:
            addLabelledVLine(ax, aes['testValue'],
                             'test = '+
                             helpers.roundedStr(aes['testValue'], 2),
                             'black', yFrac=0.75)

        self.addAxisLabels(ax)
        applyDefaultAxisProperties(ax)
        self.ax = ax


def plotScatterStats(data: pd.DataFrame, x: str, y: str,
                     type: str | StatType = 'parametric',
                     confLevel: float = 0.95,
                     bfPrior: float = 0.707,
                     bfMessage: bool = True,
                     labelVar: None | str = None,
                     labelExpression=None,
                     xLabel: None | str = None,
                     yLabel: None | str = None,
                     method='lm',
                     methodArgs: None | dict = None,
                     formula: str = 'y ~ x',
                     pointColour: str = config.DEFAULT_POINT_COLOUR,
                     pointSize: float = 3,
                     pointAlpha: float = 0.4,
                     pointWidthJitter: float = 0,
                     pointHeightJitter: float = 0,
                     lineSize: float = 1.5,
                     lineColour: str = config.DEFAULT_LINE_COLOUR,
                     marginal: bool = True,
                     marginalType: str | MarginalType = 'histogram',
                     marginalSize: float = 5,
                     margins: str | Margins = 'both',
                     package: str = config.DEFAULT_PACKAGE,
                     palette: str = config.DEFAULT_PALETTE,
                     direction: int = 1,
                     xFill: None | str = config.DEFAULT_X_FILL,
                     yFill: None | str = config.DEFAULT_Y_FILL,
                     xAlpha: float = 1,
                     yAlpha: float = 1,
                     xSize: float = 0.7,
                     ySize: float = 0.7,
                     centralityPara=None,
                     resultsSubtitle: bool = True,
                     statTitle: None | str = None,
                     title: None | str = None,
                     subtitle: None | str = None,
                     caption: None | str = None,
                     nBoot: int = 100,
                     beta: float = 0.1,
                     k: int = 2,
                     axesRangeRestrict: bool = False,
                     output: str | Output = 'plot',
                     fig=None):
    """ Scatterplot with a fitted line, optional marginal distributions, and
    the results of a correlation test as a subtitle.

    INPUT
    data: pandas dataframe. Rows with a missing x or y are dropped.
    x, y: str. Names of numeric columns.
    type: str | StatType. Correlation test to run. See statTests.corrTest.
    confLevel: float. Confidence level for the test and for the band around
        the fitted line.
    bfPrior: float. Prior width for Bayes factors.
    bfMessage: bool. If true and type is parametric, the caption gives the
        Bayes factor in favour of the null.
    labelVar: None | str. Column giving text to label points with.
    labelExpression: None | str | callable. Selects which points to label.
        A string is evaluated with DataFrame.query. A callable is given the
        dataframe and must return a boolean array. If None, all points are
        labelled (when labelVar is given).
    xLabel, yLabel: None | str. Axis labels. Default to the column names.
    method: str | callable. Smoother. 'lm' or 'lowess', or a callable. See
        fitSmoother. Statistical results are only shown for 'lm' with the
        formula 'y ~ x'.
    methodArgs: None | dict. Extra keyword arguments for the smoother.
    formula: str. Model formula for method 'lm'. 'y ~ x' or
        'y ~ poly(x, <degree>)'.
    pointColour, pointSize, pointAlpha: Aesthetics of the points.
    pointWidthJitter, pointHeightJitter: Maximum jitter in data units.
    lineSize, lineColour: Aesthetics of the fitted line.
    marginal: bool. Whether to add marginal distributions.
    marginalType: str | MarginalType. 'histogram', 'boxplot', 'density',
        'violin' or 'densigram'.
    marginalSize: scalar. The main plot is this many times wider and taller
        than the marginal plots.
    margins: str | Margins. 'both', 'x' or 'y'.
    package, palette, direction: Palette used for the marginal
        distributions and centrality lines if xFill or yFill is None. See
        paletteColours.
    xFill, yFill: None | str. Colours for the x and y marginals.
    xAlpha, yAlpha, xSize, ySize: Transparency and edge widths of the
        marginals.
    centralityPara: None | bool | str | Centrality. Draw lines at the 'mean'
        or 'median' of x and y.
    resultsSubtitle: bool. Whether to run the test and show its results.
    statTitle: None | str. Text to prefix the results with.
    title, subtitle, caption: None | str. subtitle is replaced by the test
        results if these are shown.
    nBoot, beta: Settings for the robust correlation.
    k: int. Number of decimals shown in the results.
    axesRangeRestrict: bool. Cut the axes at the data range.
    output: str | Output. What to return, 'plot', 'subtitle' or 'caption'.
    fig: None | Figure | SubFigure. Where to draw. A new figure is made if
        None.

    OUTPUT
    The figure, or the subtitle or caption text (possibly None), depending on
    output.
    """
    helpers.checkColumns(data, [x, y, labelVar])
    type = normaliseOption(type, StatType)
    centrality = normaliseOption(centralityPara, Centrality)
    marginalType = normaliseOption(marginalType, MarginalType)
    margins = normaliseOption(margins, Margins)
    output = normaliseOption(output, Output)
    if methodArgs is None:
        methodArgs = {}

    if xLabel is None:
        xLabel = x
    if yLabel is None:
        yLabel = y

    if resultsSubtitle and not isLinearModel(method, formula):
        resultsSubtitle = False
        warnings.warn('The statistical analysis is available only for a '+
                      "linear model (formula = 'y ~ x', method = 'lm'). "+
                      'Returning only the plot.', helpers.IncompatibleModelWarning,
                      stacklevel=2)

    nBefore = len(data)
    data = helpers.dropMissing(data, [x, y])
    if len(data) < nBefore:
        logger.info('Dropped %d rows with a missing %s or %s.',
                    nBefore - len(data), x, y)

    labelMask = None
    if labelVar is not None:
        labelMask = findLabelMask(data, labelExpression)

    if resultsSubtitle:
        result = statTests.corrTest(data, x, y, type=type,
                                    confLevel=confLevel, beta=beta,
                                    nBoot=nBoot, bfPrior=bfPrior)
        subtitle = statTests.testSubtitle(result, k=k, statTitle=statTitle)
        if bfMessage and (type == StatType.PARAMETRIC):
            caption = statTests.bfCorrCaption(data, x, y, bfPrior=bfPrior,
                                              k=k, caption=caption)

    if output == Output.SUBTITLE:
        return subtitle
    if output == Output.CAPTION:
        return caption

    if (xFill is None) or (yFill is None):
        xFill, yFill = paletteColours(package, palette, n=2,
                                      direction=direction)

    aes = {'pointColour': pointColour, 'pointSize': pointSize,
            'pointAlpha': pointAlpha, 'widthJitter': pointWidthJitter,
            'heightJitter': pointHeightJitter, 'method': method,
            'formula': formula, 'methodArgs': methodArgs,
            'confLevel': confLevel, 'lineSize': lineSize,
            'lineColour': lineColour, 'centrality': centrality,
            'xFill': xFill, 'yFill': yFill,
            'axesRangeRestrict': axesRangeRestrict}
    plotter = ScatterPlotter(data, x, y, aes, labelVar=labelVar,
                             labelMask=labelMask, xLabel=xLabel,
                             yLabel=yLabel, title=title, subtitle=subtitle,
                             caption=caption)

    if fig is None:
        fig = plt.figure(figsize=(7, 7), layout='constrained')
    addX = marginal and (margins in [Margins.BOTH, Margins.X])
    addY = marginal and (margins in [Margins.BOTH, Margins.Y])
    grid = fig.add_gridspec(
        nrows=2 if addX else 1, ncols=2 if addY else 1,
        height_ratios=[1, marginalSize] if addX else None,
        width_ratios=[marginalSize, 1] if addY else None)
    mainAx = fig.add_subplot(grid[-1, 0])
    plotter.plot(mainAx)

    topAx = mainAx
    if addX:
        xAx = fig.add_subplot(grid[0, 0], sharex=mainAx)
        plotMarginal(xAx, data[x].to_numpy(dtype=float), marginalType,
                     'x', xFill, xAlpha, xSize)
        topAx = xAx
    if addY:
        yAx = fig.add_subplot(grid[-1, 1], sharey=mainAx)
        plotMarginal(yAx, data[y].to_numpy(dtype=float), marginalType,
                     'y', yFill, yAlpha, ySize)

    plotter.addTitles(fig, topAx)
    return fig


def plotGroupedScatterStats(data: pd.DataFrame, x: str, y: str,
                            groupingVar: str, nCols: int = 2,
                            titlePrefix: None | str = None,
                            figsize=None, **kwargs):
    """ A scatterplot (see plotScatterStats) for each level of a grouping
    variable, combined into one figure.

    INPUT
    data: pandas dataframe.
    x, y: str. Names of numeric columns.
    groupingVar: str. A separate panel is drawn for each non-missing level
        of this column, in sorted order.
    nCols: int. Number of panels per row.
    titlePrefix: None | str. Panel titles are '<titlePrefix>: <level>'.
        Defaults to groupingVar.
    figsize: None | 2-tuple. Figure size. By default 6 inches per panel.
    kwargs: Passed on to plotScatterStats. Must not include 'title', 'fig' or
        'output'.

    OUTPUT
    The figure.
    """
    helpers.checkColumns(data, [x, y, groupingVar])
    for reserved in ['title', 'fig', 'output']:
        if reserved in kwargs:
            raise helpers.InvalidConfigurationError(
                f'{reserved} is set for each panel and cannot be passed.')
    if titlePrefix is None:
        titlePrefix = groupingVar

    levels = sortedLevels(data[groupingVar].dropna())
    if len(levels) == 0:
        raise ValueError(f'{groupingVar} has no non-missing values.')
    nCols = min(nCols, len(levels))
    nRows = int(np.ceil(len(levels) / nCols))
    if figsize is None:
        figsize = (6 * nCols, 6 * nRows)

    fig = plt.figure(figsize=figsize, layout='constrained')
    subFigs = fig.subfigures(nRows, nCols, squeeze=False).ravel()
    for thisSubFig, level in zip(subFigs, levels):
        groupData = data.loc[data[groupingVar] == level, :]
        plotScatterStats(groupData, x, y, title=f'{titlePrefix}: {level}',
                         fig=thisSubFig, **kwargs)
    return fig


def plotPieStats(data: pd.DataFrame, main: str,
                 condition: None | str = None,
                 ratio=None,
                 resultsSubtitle: bool = True,
                 labelContent='percentage',
                 labelSeparator: str = '\n',
                 percK: int = 1,
                 facetProptest: bool = True,
                 fdr: bool = False,
                 k: int = 2,
                 package: str = 'seaborn',
                 palette: str = 'Dark2',
                 direction: int = 1,
                 legendTitle: None | str = None,
                 statTitle: None | str = None,
                 title: None | str = None,
                 subtitle: None | str = None,
                 caption: None | str = None,
                 output: str | Output = 'plot',
                 fig=None):
    """ Pie chart of a categorical variable, with the results of a
    chi-squared test as a subtitle.

    INPUT
    data: pandas dataframe. Rows with a missing main (or condition) are
        dropped.
    main: str. Categorical column shown as the slices.
    condition: None | str. If provided, one pie is drawn for each level of
        this column and the subtitle gives Pearson's test of independence
        between main and condition. Otherwise the subtitle gives a goodness
        of fit test.
    ratio: None | array-like. Expected proportions of the levels of main (in
        sorted order) for the goodness of fit test.
    resultsSubtitle: bool. Whether to run the test and show its results.
    labelContent, labelSeparator, percK: Slice labels. See
        catSummaries.catLabelDf.
    facetProptest: bool. If true and condition is given, each pie title
        includes a goodness of fit test of main within that condition.
    fdr: bool. FDR correct the tests in the pie titles.
    k: int. Number of decimals in the results.
    package, palette, direction: Colours of the slices. See paletteColours.
    legendTitle: None | str. Defaults to main.
    statTitle, title, subtitle, caption: See plotScatterStats.
    output: str | Output. 'plot' or 'subtitle'.
    fig: None | Figure | SubFigure. Where to draw.

    OUTPUT
    The figure, or the subtitle or caption.
    """
    helpers.checkColumns(data, [main, condition])
    output = normaliseOption(output, Output)
    data = helpers.dropMissing(data, [main] + helpers.asColList(condition))

    groupVars = [main] + helpers.asColList(condition)
    counts = catSummaries.catCounter(data, groupVars, percWithin=condition)
    counts = catSummaries.catLabelDf(counts, labelContent=labelContent,
                                     labelSeparator=labelSeparator,
                                     percK=percK)

    if resultsSubtitle:
        if condition is None:
            levelCounts = counts.set_index(main)['counts']
            levelCounts = levelCounts.loc[sortedLevels(levelCounts.index)]
            if len(levelCounts) > 1:
                result = statTests.gofTest(levelCounts.to_numpy(),
                                           ratio=ratio)
                subtitle = statTests.testSubtitle(result, k=k,
                                                  statTitle=statTitle)
        else:
            result = statTests.contingencyTest(data, main, condition)
            if result is not None:
                subtitle = statTests.testSubtitle(result, k=k,
                                                  statTitle=statTitle)

    if output == Output.SUBTITLE:
        return subtitle
    if output == Output.CAPTION:
        return caption

    colours = levelColours(counts[main], package, palette, direction)

    if condition is None:
        facets = [(None, counts)]
    else:
        facetLabels = None
        if facetProptest:
            facetLabels = catSummaries.dfFacetLabel(data, main, condition,
                                                    k=k, fdr=fdr)
        facets = []
        for level in sortedLevels(counts[condition]):
            facetTitle = facetTitleText(data, condition, level, facetLabels)
            facets.append((facetTitle,
                           counts.loc[counts[condition] == level, :]))

    nCols = min(len(facets), 3)
    nRows = int(np.ceil(len(facets) / nCols))
    if fig is None:
        fig = plt.figure(figsize=(4*nCols + 1.5, 4*nRows + 1),
                         layout='constrained')
    axs = np.asarray(fig.subplots(nRows, nCols, squeeze=False)).ravel()
    for thisAx, (facetTitle, facetCounts) in zip(axs, facets):
        PiePlotter(facetCounts, main, colours,
                   facetTitle=facetTitle).plot(thisAx)
    for thisAx in axs[len(facets):]:
        thisAx.set_visible(False)

    handles = [mplPatches.Patch(facecolor=colour, edgecolor='black',
                                label=str(level))
               for level, colour in colours.items()]
    fig.legend(handles=handles, loc='outside right center', frameon=False,
               title=main if legendTitle is None else legendTitle)

    Plotter(title=title, subtitle=subtitle, caption=caption).addTitles(fig)
    return fig


def plotBarStats(data: pd.DataFrame, main: str, condition: str,
                 resultsSubtitle: bool = True,
                 labelContent='percentage',
                 labelSeparator: str = '\n',
                 percK: int = 1,
                 facetProptest: bool = True,
                 fdr: bool = False,
                 k: int = 2,
                 package: str = 'seaborn',
                 palette: str = 'Dark2',
                 direction: int = 1,
                 xLabel: None | str = None,
                 yLabel: str = 'percent',
                 statTitle: None | str = None,
                 title: None | str = None,
                 subtitle: None | str = None,
                 caption: None | str = None,
                 output: str | Output = 'plot',
                 ax=None):
    """ Stacked bar chart showing the percentage of each level of main
    within each level of condition, with the results of Pearson's
    chi-squared test of independence as a subtitle.

    Each bar is labelled with its sample size and, if facetProptest is true,
    a goodness of fit test of main within that level of condition.

    INPUT
    See plotPieStats. Additionally...
    xLabel: None | str. Defaults to condition.
    yLabel: str.
    ax: None | axis. Axis to plot onto. If None, creates a new figure. The
        title and caption are added to the figure containing the axis.

    OUTPUT
    The figure, or the subtitle or caption.
    """
    helpers.checkColumns(data, [main, condition])
    output = normaliseOption(output, Output)
    data = helpers.dropMissing(data, [main, condition])
    if xLabel is None:
        xLabel = condition

    counts = catSummaries.catCounter(data, [main, condition],
                                     percWithin=condition)
    counts = catSummaries.catLabelDf(counts, labelContent=labelContent,
                                     labelSeparator=labelSeparator,
                                     percK=percK)

    if resultsSubtitle:
        result = statTests.contingencyTest(data, main, condition)
        if result is not None:
            subtitle = statTests.testSubtitle(result, k=k,
                                              statTitle=statTitle)

    if output == Output.SUBTITLE:
        return subtitle
    if output == Output.CAPTION:
        return caption

    if facetProptest:
        facetLabels = catSummaries.dfFacetLabel(data, main, condition, k=k,
                                                fdr=fdr)
    else:
        facetLabels = catSummaries.catCounter(data, condition)
        facetLabels['N'] = [f'(n = {count})'
                            for count in facetLabels['counts']]
        facetLabels['mathLabel'] = ''

    colours = levelColours(counts[main], package, palette, direction)
    if ax is None:
        fig, ax = plt.subplots(figsize=(8, 6), layout='constrained')
    else:
        fig = ax.figure

    plotter = BarPlotter(counts, main, condition, colours,
                         facetLabels=facetLabels, xLabel=xLabel,
                         yLabel=yLabel, title=title, subtitle=subtitle,
                         caption=caption)
    plotter.plot(ax)
    plotter.addTitles(fig, ax)
    return fig


def plotHistoStats(data: pd.DataFrame, x: str,
                   testValue: float = 0,
                   type: str | StatType = 'parametric',
                   confLevel: float = 0.95,
                   bins='auto',
                   barFill: str = 'grey',
                   alpha: float = 0.7,
                   centralityPara='mean',
                   centralityColour: str = 'blue',
                   testValueLine: bool = False,
                   resultsSubtitle: bool = True,
                   k: int = 2,
                   xLabel: None | str = None,
                   yLabel: str = 'count',
                   statTitle: None | str = None,
                   title: None | str = None,
                   subtitle: None | str = None,
                   caption: None | str = None,
                   output: str | Output = 'plot',
                   ax=None):
    """ Histogram of a numeric variable, with the results of a one sample
    test against testValue as a subtitle.

    INPUT
    data: pandas dataframe. Missing values of x are dropped.
    x: str. Numeric column.
    testValue: scalar. Value under the null hypothesis.
    type: str | StatType. 'parametric' or 'nonparametric'. See
        statTests.oneSampleTest.
    bins: int | str. Passed to matplotlib hist.
    barFill, alpha: Aesthetics of the bars.
    centralityPara: None | bool | str | Centrality. Line at the mean or
        median.
    centralityColour: str.
    testValueLine: bool. Whether to add a line at testValue.
    Remaining inputs as for plotBarStats.

    OUTPUT
    The figure, or the subtitle or caption.
    """
    helpers.checkColumns(data, x)
    type = normaliseOption(type, StatType)
    centrality = normaliseOption(centralityPara, Centrality)
    output = normaliseOption(output, Output)
    if type not in [StatType.PARAMETRIC, StatType.NONPARAMETRIC]:
        raise helpers.InvalidConfigurationError(
            'Histograms support parametric and nonparametric tests only.')
    if xLabel is None:
        xLabel = x
    vals = helpers.dropMissing(data, x)[x].to_numpy(dtype=float)

    if resultsSubtitle:
        result = statTests.oneSampleTest(data, x, testValue=testValue,
                                         type=type, confLevel=confLevel)
        subtitle = statTests.testSubtitle(result, k=k, statTitle=statTitle)

    if output == Output.SUBTITLE:
        return subtitle
    if output == Output.CAPTION:
        return caption

    if ax is None:
        fig, ax = plt.subplots(figsize=(7, 5), layout='constrained')
    else:
        fig = ax.figure

    aes = {'bins': bins, 'barFill': barFill, 'alpha': alpha,
            'centrality': centrality, 'centralityColour': centralityColour,
            'testValue': testValue, 'testValueLine': testValueLine}
    plotter = HistoPlotter(vals, aes, xLabel=xLabel, yLabel=yLabel,
                           title=title, subtitle=subtitle, caption=caption)
    plotter.plot(ax)
    plotter.addTitles(fig, ax)
    return fig


def isLinearModel(method, formula: str) -> bool:
    """ True if the smoother is the plain linear model, i.e. method 'lm' and
    formula 'y ~ x' (whitespace is ignored). Callables are never treated as
    the linear model.
    """
    if not isinstance(method, str):
        return False
    return (method == 'lm') and (re.sub(r'\s', '', formula) == 'y~x')


def parseFormula(formula: str) -> int:
    """ Polynomial degree of a model formula. Accepts 'y ~ x' (degree 1) and
    'y ~ poly(x, <degree>)'.
    """
    compact = re.sub(r'\s', '', formula)
    if compact == 'y~x':
        return 1
    match = re.fullmatch(r'y~poly\(x,(\d+)\)', compact)
    if match is None:
        raise helpers.InvalidConfigurationError(
            f"Unsupported formula '{formula}'. Use 'y ~ x' or "+
            "'y ~ poly(x, <degree>)'.")
    degree = int(match.group(1))
    if degree < 1:
        raise helpers.InvalidConfigurationError('Degree must be at least 1.')
    return degree


def fitSmoother(xVals, yVals, method='lm', formula='y ~ x', methodArgs=None,
                confLevel=0.95, nPoints=100):
    """ Fit a smooth line through the points.

    INPUT
    xVals, yVals: 1D arrays of equal length without missing values.
    method: str | callable. Options are...
        'lm': Least squares polynomial fit following formula, with a
            confidence band.
        'lowess': Locally weighted regression (statsmodels). methodArgs are
            passed on, e.g. {'frac': 0.5}. No confidence band.
        callable: Called as method(xVals, yVals, **methodArgs) and must
            return the x and y values of the line. No confidence band.
    formula: str. See parseFormula. Only used for 'lm'.
    methodArgs: None | dict.
    confLevel: float. Confidence level of the band.
    nPoints: int. Number of points along the fitted line for 'lm'.

    OUTPUT
    xFit, yFit: 1D arrays. The fitted line.
    lower, upper: 1D arrays | None. The confidence band, if available.
    """
    if methodArgs is None:
        methodArgs = {}

    if callable(method):
        xFit, yFit = method(xVals, yVals, **methodArgs)
        return np.asarray(xFit), np.asarray(yFit), None, None

    if method == 'lowess':
        fitted = lowess(yVals, xVals, **methodArgs)
        return fitted[:, 0], fitted[:, 1], None, None

    if method != 'lm':
        raise helpers.InvalidConfigurationError(
            f"Unrecognised smoothing method '{method}'. Use 'lm', 'lowess' "+
            "or a callable.")

    degree = parseFormula(formula)
    if len(xVals) <= degree + 1:
        raise ValueError('Not enough data points to fit the line.')
    terms = ['x'] + [f'I(x**{power})' for power in range(2, degree + 1)]
    points = pd.DataFrame({'x': xVals, 'y': yVals})
    model = smf.ols('y ~ ' + ' + '.join(terms), data=points).fit()

    xFit = np.linspace(np.min(xVals), np.max(xVals), nPoints)
    band = model.get_prediction(pd.DataFrame({'x': xFit})).summary_frame(
        alpha=1 - confLevel)
    return (xFit, band['mean'].to_numpy(), band['mean_ci_lower'].to_numpy(),
            band['mean_ci_upper'].to_numpy())


def findLabelMask(data: pd.DataFrame, labelExpression) -> np.ndarray:
    """ Find which rows to label.

    INPUT
    data: dataframe with a default (range) index.
    labelExpression: None | str | callable. See plotScatterStats.

    OUTPUT
    1D boolean array as long as data.
    """
    if labelExpression is None:
        return np.ones(len(data), dtype=bool)
    if isinstance(labelExpression, str):
        selected = data.query(labelExpression)
        return data.index.isin(selected.index)
    if callable(labelExpression):
        mask = np.asarray(labelExpression(data), dtype=bool)
        if mask.shape != (len(data),):
            raise ValueError('labelExpression must return one boolean per row.')
        return mask
    raise TypeError('labelExpression must be None, a query string or a '+
                    'callable.')


def centralityFun(centrality: Centrality):
    """ The numpy function computing the requested centrality measure. """
    if centrality == Centrality.MEAN:
        return np.mean
    elif centrality == Centrality.MEDIAN:
        return np.median
    else:
        raise ValueError('Unrecognised option')


def addLabelledVLine(ax, xPos, label, colour, yFrac=0.5):
    """ Add a dashed vertical line with a label placed part way up.

    INPUT
    ax: axis
    xPos: scalar. Location in data coordinates.
    label: str.
    colour: str.
    yFrac: scalar. Height of the label as a fraction of the axis.
    """
    mixTransform = ax.get_xaxis_transform()
    ax.axvline(xPos, linestyle='--', color=colour, linewidth=1)
    ax.text(xPos, yFrac, label, transform=mixTransform, rotation='vertical',
            ha='center', va='center', color=colour, fontsize=8,
            bbox={'boxstyle': 'round,pad=0.2', 'fc': 'white',
                  'ec': colour})


def addCentralityLines(ax, xVals, yVals, centrality: Centrality,
                       xColour, yColour, k=2):
    """ Add a vertical line at the centre of x and a horizontal line at the
    centre of y, each labelled with its value.

    INPUT
    ax: axis
    xVals, yVals: 1D arrays.
    centrality: Centrality. Nothing is added for Centrality.NONE.
    xColour, yColour: str. Colours for the vertical and horizontal lines.
    k: int. Decimals shown in the labels.
    """
    if centrality == Centrality.NONE:
        return
    fun = centralityFun(centrality)
    xCentre = fun(xVals)
    yCentre = fun(yVals)

    addLabelledVLine(ax, xCentre, f'{centrality.value} = '+
                     helpers.specifyDecimal(xCentre, k), xColour)

    mixTransform = ax.get_yaxis_transform()
    ax.axhline(yCentre, linestyle='--', color=yColour, linewidth=1)
    ax.text(0.5, yCentre, f'{centrality.value} = '+
            helpers.specifyDecimal(yCentre, k), transform=mixTransform,
            ha='center', va='center', color=yColour, fontsize=8,
            bbox={'boxstyle': 'round,pad=0.2', 'fc': 'white', 'ec': yColour})


def addPointLabels(ax, xPos, yPos, labels):
    """ Label points with boxed text joined to the point by a line. Each
    label is placed at a fixed offset of 12 points, cycling through the four
    diagonals in row order. Labels are not moved to avoid each other, so
    dense clusters may still overlap. NaN labels are skipped.
    """
    offsets = [(12, 12), (-12, 12), (12, -12), (-12, -12)]
    for iLabel, (thisX, thisY, thisLabel) in enumerate(zip(xPos, yPos,
                                                             labels)):
        if pd.isna(thisLabel):
            continue
        offset = offsets[iLabel % len(offsets)]
        ax.annotate(str(thisLabel), xy=(thisX, thisY), xytext=offset,
                    textcoords='offset points', fontweight='bold',
                    fontsize=8, color='black',
                    ha='left' if offset[0] > 0 else 'right',
                    va='bottom' if offset[1] > 0 else 'top',
                    bbox={'boxstyle': 'round,pad=0.3', 'fc': 'white',
                          'ec': 'black'},
                    arrowprops={'arrowstyle': '-', 'color': 'black'})


def plotMarginal(ax, vals, marginalType: MarginalType, axis: str, fill,
                 alpha=1, size=0.7):
    """ Plot the distribution of one variable along the edge of a
    scatterplot.

    INPUT
    ax: Axis to plot onto. Should share the relevant axis with the
        scatterplot.
    vals: 1D array without missing values.
    marginalType: MarginalType.
    axis: str. 'x' if the distribution is of the horizontal variable (drawn
        above the scatterplot), 'y' if of the vertical variable (drawn to
        the right).
    fill: str. Fill colour.
    alpha: scalar. Transparency of the fill.
    size: scalar. Width of the outlines.
    """
    assert axis in ['x', 'y']
    vertical = axis == 'y'

    # Seaborn draws along y when given y, which is the right-hand margin
    where = {'y': vals} if vertical else {'x': vals}

    if marginalType in [MarginalType.HISTOGRAM, MarginalType.DENSIGRAM]:
        sns.histplot(**where, ax=ax, bins='auto', color=fill, alpha=alpha,
                     edgecolor='black', linewidth=size,
                     stat='density' if marginalType == MarginalType.DENSIGRAM
                     else 'count')

    if marginalType in [MarginalType.DENSITY, MarginalType.DENSIGRAM]:
        if np.ptp(vals) > 0:
            filled = marginalType == MarginalType.DENSITY
            sns.kdeplot(**where, ax=ax, fill=filled,
                        color=fill if filled else 'black',
                        alpha=alpha if filled else 1, linewidth=size)
        else:
            logger.debug('No variance in the marginal values, so the '+
                         'density is not drawn.')

    elif marginalType == MarginalType.BOXPLOT:
        # seaborn 0.13 boxplot still passes matplotlib's deprecated vert
        parts = ax.boxplot(vals, widths=0.6, patch_artist=True,
                           orientation='vertical' if vertical
                           else 'horizontal')
        for box in parts['boxes']:
            box.set_facecolor(fill)
            box.set_alpha(alpha)
            box.set_linewidth(size)

    elif marginalType == MarginalType.VIOLIN:
        sns.violinplot(**where, ax=ax, color=fill, inner=None,
                       linewidth=size, alpha=alpha)

    ax.set_xlabel('')
    ax.set_ylabel('')

    applyDefaultAxisProperties(ax, invis=True)
    if vertical:
        ax.tick_params(axis='y', labelleft=False, left=False)
        ax.set_xticks([])
    else:
        ax.tick_params(axis='x', labelbottom=False, bottom=False)
        ax.set_yticks([])


def paletteColours(package: str = config.DEFAULT_PACKAGE,
                   palette: str = config.DEFAULT_PALETTE, n: int = 2,
                   direction: int = 1) -> list[str]:
    """ Pick n discrete colours from a named palette.

    INPUT
    package: str. 'matplotlib' to use a matplotlib colormap, or 'seaborn'
        to use a seaborn palette.
    palette: str. Name of the colormap or palette.
    n: int. Number of colours.
    direction: int. 1 for the palette order, -1 to reverse it.

    OUTPUT
    List of n hex colour strings.
    """
    if direction not in [1, -1]:
        raise helpers.InvalidConfigurationError('direction must be 1 or -1')

    if package == 'matplotlib':
        try:
            cmap = matplotlib.colormaps[palette]
        except KeyError as err:
            raise helpers.InvalidConfigurationError(
                f"Unknown matplotlib colormap '{palette}'") from err
        if isinstance(cmap, pltColours.ListedColormap) and (cmap.N < 256):
            # Qualitative map. Use its colours in order, cycling if needed.
            colours = [cmap.colors[iCol % cmap.N] for iCol in range(n)]
        else:
            colours = [cmap(pos) for pos in np.linspace(0, 1, n)]
        colours = [pltColours.to_hex(colour) for colour in colours]
    elif package == 'seaborn':
        try:
            colours = sns.color_palette(palette, n_colors=n).as_hex()
        except ValueError as err:
            raise helpers.InvalidConfigurationError(
                f"Unknown seaborn palette '{palette}'") from err
    else:
        raise helpers.InvalidConfigurationError(
            f"Unknown palette package '{package}'. Use 'matplotlib' or "+
            "'seaborn'.")

    colours = list(colours)
    if direction == -1:
        colours = colours[::-1]
    logger.debug('Using colours %s from %s palette %s', colours, package,
                 palette)
    return colours


def levelColours(levels, package, palette, direction=1) -> dict:
    """ Map each unique level (in sorted order) to a colour from a palette.
    """
    levels = sortedLevels(levels)
    colours = paletteColours(package, palette, n=len(levels),
                             direction=direction)
    return dict(zip(levels, colours))


def sortedLevels(vals) -> list:
    """ Unique non-missing values in sorted order. Categorical values follow
    the category order.
    """
    vals = pd.Series(vals)
    if isinstance(vals.dtype, pd.CategoricalDtype):
        present = set(vals.dropna())
        return [level for level in vals.cat.categories if level in present]
    return sorted(vals.dropna().unique().tolist())


def facetTitleText(data, condition, level, facetLabels) -> str:
    """ Title for the facet of one level of condition, giving its sample
    size and, if available, the result of its proportion test.
    """
    nLevel = int(np.sum(data[condition] == level))
    txt = f'{level} (n = {nLevel})'
    if facetLabels is not None:
        match = facetLabels.loc[facetLabels[condition] == level, 'mathLabel']
        if len(match) == 1:
            txt = txt + '\n' + match.iloc[0]
    return txt


def applyDefaultAxisProperties(axis, invis=False):
    """ Apply some defaults to the appearance of the axes

    INPUT
    axis: The axis we want to modify
    invis: bool. If true use defaults appropriate for an invisible axis
    """
    axis.spines['top'].set_visible(False)
    axis.spines['right'].set_visible(False)

    if invis:
        axis.spines['left'].set_visible(False)
        axis.spines['bottom'].set_visible(False)
