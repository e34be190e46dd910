""" Counts, percentages and labels for categorical variables. These tables
feed the slice labels of the pie and bar charts and the proportion test
annotations above each bar or pie facet.

Data flows one way: raw data -> catCounter -> catLabelDf, and raw data ->
groupedPropTest -> facetLabelTable.
"""
import logging
import numpy as np
import pandas as pd
import scipy.stats as spStats
import mne
from . import helpers
from .config import LabelContent, normaliseOption, SIGNIFICANCE_LEVELS

logger = logging.getLogger(__name__)


def catCounter(data: pd.DataFrame, groupVars: str | list[str],
               percWithin: None | str = None) -> pd.DataFrame:
    """ Count the cases for each combination of values of the grouping
    variables that occurs in the data.

    Missing values in the grouping columns form their own group. Combinations
    that do not occur (e.g. unused categories of a categorical column) are not
    included.

    INPUT
    data: pandas dataframe. Not modified.
    groupVars: str | list[str]. Names of the grouping columns.
    percWithin: None | str. If None, percentages are relative to the total
        number of rows in data. Otherwise the name of one of the groupVars,
        and percentages are relative to the number of rows sharing the value
        of this column.

    OUTPUT
    counts: dataframe. Index is arbitrary. One row per group, sorted in
        descending order of the first grouping column (stable, with missing
        values last). Columns are the groupVars, and...
            counts: int. Number of rows in the group.
            perc: float. 100 * counts / total.
    """
    groupVars = helpers.asColList(groupVars)
    if len(groupVars) == 0:
        raise helpers.InvalidConfigurationError(
            'At least one grouping column is required.')
    helpers.checkColumns(data, groupVars + helpers.asColList(percWithin))
    if (percWithin is not None) and (percWithin not in groupVars):
        raise helpers.InvalidConfigurationError(
            f'percWithin ({percWithin}) must be one of the grouping columns.')

    grouped = data.groupby(groupVars, dropna=False, sort=False,
                           observed=True)
    counts = grouped.size()
    helpers.checkDfLevels(counts, indexLvs=groupVars)
    counts = counts.rename('counts').reset_index()

    if percWithin is None:
        total = len(data)
    else:
        total = counts.groupby(percWithin, dropna=False,
                               observed=True)['counts'].transform('sum')
    counts['perc'] = (counts['counts'] / total) * 100

    counts = counts.loc[counts['counts'] != 0, :]
    counts = counts.sort_values(groupVars[0], ascending=False, kind='stable',
                                na_position='last')
    counts = counts.reset_index(drop=True)

    assert counts['counts'].sum() == len(data)
    return counts


def catLabelDf(data: pd.DataFrame,
               labelColName: str = 'sliceLabel',
               labelContent: str | LabelContent = 'percentage',
               labelSeparator: str = '\n',
               percK: int = 1) -> pd.DataFrame:
    """ Add a column containing a display label to a table of counts.

    INPUT
    data: dataframe. Usually the output of catCounter. Needs a 'perc' column
        for percentage labels and a 'counts' column for count labels.
    labelColName: str. Name of the column to add.
    labelContent: str | LabelContent. What to display...
        'percentage': '<perc>%'
        'counts': 'n = <counts>'
        'both': 'n = <counts><labelSeparator>(<perc>%)'
    labelSeparator: str. Inserted verbatim between the counts and the
        percentage when labelContent is 'both'.
    percK: int. Number of decimals the percentage is rounded to. Trailing
        zeros are not shown.

    OUTPUT
    Copy of data with the label column added.
    """
    labelContent = normaliseOption(labelContent, LabelContent)
    needed = {
        LabelContent.PERCENTAGE: ['perc'],
        LabelContent.COUNTS: ['counts'],
        LabelContent.BOTH: ['counts', 'perc'],
    }[labelContent]
    helpers.checkColumns(data, needed)

    data = data.copy()
    if labelContent == LabelContent.PERCENTAGE:
        labels = [f'{helpers.roundedStr(perc, percK)}%'
                  for perc in data['perc']]
    elif labelContent == LabelContent.COUNTS:
        labels = [f'n = {count}' for count in data['counts']]
    elif labelContent == LabelContent.BOTH:
        labels = [f'n = {count}{labelSeparator}'+
                  f'({helpers.roundedStr(perc, percK)}%)'
                  for count, perc in zip(data['counts'], data['perc'])]
    else:
        raise AssertionError('Bug')

    data[labelColName] = labels
    return data


def formatPValue(pValue, k: int = 3) -> str:
    """ Display string for a p-value.

    If the value rounds to zero at k decimal places the fixed string
    '<= 0.001' is returned, whatever k is. Otherwise returns '== ' followed
    by the value with exactly k decimals.
    """
    if pd.isna(pValue) or (pValue < 0) or (pValue > 1):
        raise ValueError(f'{pValue} is not a valid p-value')
    rounded = helpers.specifyDecimal(pValue, k)
    if float(rounded) == 0:
        return '<= 0.001'
    return '== ' + rounded


def pValueFormatter(df: pd.DataFrame, k: int = 3,
                    pCol: str = 'pValue') -> pd.DataFrame:
    """ Copy of df with a 'pValueFormatted' column computed from the column
    pCol using formatPValue. Missing p-values stay missing.
    """
    helpers.checkColumns(df, pCol)
    df = df.copy()
    df['pValueFormatted'] = [np.nan if pd.isna(thisP)
                             else formatPValue(thisP, k)
                             for thisP in df[pCol]]
    return df


def groupedPropTest(data: pd.DataFrame, groupingVars: str | list[str],
                    measure: str, fdr: bool = False) -> pd.DataFrame:
    """ For each group, run a chi-squared goodness of fit test of whether the
    levels of measure are equally frequent.

    INPUT
    data: pandas dataframe.
    groupingVars: str | list[str]. A test is run for each unique combination
        of the values of these columns.
    measure: str. Categorical column whose level frequencies are tested.
        Missing values are not counted.
    fdr: bool. If true, additionally apply Benjamini-Hochberg False Discovery
        Rate correction across groups. Significance is then based on the
        corrected p-values.

    OUTPUT
    results: dataframe. Index is arbitrary. One row per group, in assending
        order of the grouping columns. Columns are the groupingVars, and...
            statistic: chi-squared statistic.
            parameter: degrees of freedom.
            pValue: uncorrected p-value.
            pValueFdr: (Only present if fdr is True.) Corrected p-value.
            significance: '***', '**', '*' or 'ns'.
        Groups in which fewer than two levels of measure occur cannot be
        tested. For these groups all of the above are missing.
    """
    groupingVars = helpers.asColList(groupingVars)
    helpers.checkColumns(data, groupingVars + [measure])

    results = []
    for groupKey, group in data.groupby(groupingVars, dropna=False,
                                        observed=True):
        if not isinstance(groupKey, tuple):
            groupKey = (groupKey,)
        thisResult = dict(zip(groupingVars, groupKey))

        levelCounts = group[measure].value_counts(dropna=True)
        levelCounts = levelCounts[levelCounts > 0]
        if len(levelCounts) < 2:
            logger.debug('Proportion test not computable for group %s',
                         groupKey)
            thisResult.update(statistic=np.nan, parameter=np.nan,
                              pValue=np.nan)
        else:
            test = spStats.chisquare(levelCounts.to_numpy())
            thisResult.update(statistic=float(test.statistic),
                              parameter=len(levelCounts) - 1,
                              pValue=float(test.pvalue))
        results.append(thisResult)

    results = pd.DataFrame(results,
                           columns=groupingVars+
                           ['statistic', 'parameter', 'pValue'])
    results['parameter'] = results['parameter'].astype(float)

    pCol = 'pValue'
    if fdr:
        testable = results['pValue'].notna().to_numpy()
        corrected = np.full(len(results), np.nan)
        if np.any(testable):
            _, corrected[testable] = mne.stats.fdr_correction(
                results.loc[testable, 'pValue'].to_numpy())
        results['pValueFdr'] = corrected
        pCol = 'pValueFdr'

    results['significance'] = [
        helpers.significanceStars(thisP, SIGNIFICANCE_LEVELS)
        for thisP in results[pCol]]

    nTested = results['pValue'].notna().sum()
    nSig = results['significance'].isin(['*', '**', '***']).sum()
    logger.info('%d of %d testable groups significant.', nSig, nTested)
    return results


def facetLabelTable(counts: pd.DataFrame, propTests: pd.DataFrame, y: str,
                    k: int = 3, pCol: str = 'pValue') -> pd.DataFrame:
    """ Join the number of cases for each level of y with the results of the
    proportion test for that level, and build a label describing the test.

    The caller must already have removed rows of propTests with a missing
    'significance' (i.e. groups for which the test could not be computed).

    INPUT
    counts: dataframe. Output of catCounter(data, y).
    propTests: dataframe. Output of groupedPropTest(data, y, measure).
    y: str. The grouping column shared by the two tables.
    k: int. Decimal places for the statistic and the p-value.
    pCol: str. Column of propTests holding the p-value to display.

    OUTPUT
    labels: dataframe. Inner join of the two tables on y, in the row order of
        counts. Levels of y that are missing from either table are dropped.
        Has the columns of both tables, and additionally...
            N: str. '(n = <counts>)'
            label: str. The test result as a plotmath expression.
            mathLabel: str. The test result as matplotlib mathtext.
    """
    helpers.checkColumns(counts, [y, 'counts'])
    helpers.checkColumns(propTests, [y, 'statistic', 'parameter', pCol])
    if ('significance' in propTests.columns) and \
            propTests['significance'].isna().any():
        raise ValueError('Proportion tests which could not be computed '+
                         'should be removed before building labels.')

    counts = counts.copy()
    counts['N'] = [f'(n = {count})' for count in counts['counts']]
    propTests = propTests.drop(columns=[thisCol for thisCol in
                                        ['counts', 'perc', 'N']
                                        if thisCol in propTests.columns])

    labels = pd.merge(counts, propTests, how='inner', on=y,
                      suffixes=(False, False), validate='one_to_one')
    labels['parameter'] = labels['parameter'].astype(int)
    labels = pValueFormatter(labels, k=k, pCol=pCol)

    plotmath = []
    mathtext = []
    for dof, stat, pTxt in zip(labels['parameter'], labels['statistic'],
                               labels['pValueFormatted']):
        statTxt = helpers.specifyDecimal(stat, k)
        plotmath.append(' '.join(["list(~chi['gof']^2~", '(', str(dof),
                                  ')==', statTxt, ', ~italic(p)', pTxt, ')']))
        pMath = pTxt.replace('<= ', r'\leq ').replace('== ', '= ')
        mathtext.append(r'$\chi^2_{\mathrm{gof}}(' + str(dof) + ') = ' +
                        statTxt + '$, $p ' + pMath + '$')
    labels['label'] = plotmath
    labels['mathLabel'] = mathtext

    labels = labels.drop(columns='pValueFormatted').reset_index(drop=True)
    return labels


def dfFacetLabel(data: pd.DataFrame, x: str, y: str, k: int = 3,
                 fdr: bool = False) -> pd.DataFrame:
    """ Sample size and proportion test label for each level of y.

    INPUT
    data: pandas dataframe.
    x: str. Categorical column whose level frequencies are tested within
        each level of y.
    y: str. Grouping column.
    k: int. Decimal places for the statistic and the p-value.
    fdr: bool. Passed to groupedPropTest. If true the displayed p-values are
        FDR corrected.

    OUTPUT
    See facetLabelTable. Levels of y for which the test is not computable are
    not included.
    """
    helpers.checkColumns(data, [x, y])
    counts = catCounter(data, y)
    propTests = groupedPropTest(data, y, x, fdr=fdr)
    propTests = propTests.loc[propTests['significance'].notna(), :]
    return facetLabelTable(counts, propTests, y, k=k,
                           pCol='pValueFdr' if fdr else 'pValue')
