""" Errors, column checks and number formatting shared across the package.

Rounding rule used everywhere that numbers are displayed: Python fixed-point
string formatting. This rounds the exact binary value of the float correctly,
with ties (only possible for exactly representable halves, e.g. 62.5) going
to the even digit. So specifyDecimal(62.5, 0) == '62' and
specifyDecimal(0.125, 2) == '0.12'.
"""
import numpy as np
import pandas as pd


class ColumnNotFoundError(KeyError):
    """ A column referenced by name is not present in the dataframe. """


class InvalidConfigurationError(ValueError):
    """ An option was given a value outside of its recognised set. """


class IncompatibleModelWarning(UserWarning):
    """ Statistical results were requested for a smoother that is not the
    plain linear model (method 'lm', formula 'y ~ x'). The results are
    switched off and only the plot is produced.
    """


def asColList(cols) -> list:
    """ Promote a single column name to a list of column names. None gives an
    empty list.
    """
    if cols is None:
        return []
    if isinstance(cols, str):
        return [cols]
    assert isinstance(cols, (list, tuple))
    return list(cols)


def checkColumns(data: pd.DataFrame, cols):
    """ Check that all named columns are present in the data.

    INPUT
    data: pandas dataframe.
    cols: str | list[str] | None. Column names. None entries are ignored.
    """
    cols = [thisCol for thisCol in asColList(cols) if thisCol is not None]
    for thisCol in cols:
        if not isinstance(thisCol, str):
            raise TypeError('Columns must be referenced by their name as a '+
                            f'string, not {type(thisCol).__name__}')

    missing = [thisCol for thisCol in cols if thisCol not in data.columns]
    if missing:
        raise ColumnNotFoundError(
            f'Column(s) {missing} not found. Available columns: '+
            f'{list(data.columns)}')


def specifyDecimal(x, k: int = 2) -> str:
    """ Fixed-point representation of x with exactly k decimal places. """
    assert k >= 0
    return f'{x:.{k}f}'


def roundedStr(x, k: int = 1) -> str:
    """ Round x to k decimal places and drop any trailing zeros, so that
    33.333 becomes '33.3' and 50.0 becomes '50'.
    """
    txt = specifyDecimal(x, k)
    if '.' in txt:
        txt = txt.rstrip('0').rstrip('.')
    if txt == '-0':
        txt = '0'
    return txt


def significanceStars(pValue, levels) -> str | float:
    """ Convert a p-value into a significance label.

    INPUT
    pValue: scalar. May be NaN.
    levels: list of 2-tuples. Each tuple is (upper bound, label), sorted in
        assending order of the bound. The first bound that pValue falls
        below determines the label. Otherwise 'ns' is returned.

    OUTPUT
    str, or NaN if pValue is NaN.
    """
    if pd.isna(pValue):
        return np.nan
    for bound, label in levels:
        if pValue < bound:
            return label
    return 'ns'


def checkDfLevels(df, indexLvs=None, colLvs=None, ignoreOrder=False):
    """ Check that the the levels of the index, or levels of the columns, of a
    pandas dataframe, match those that are expected.

    INPUT
    df: Dataframe to check. Can also pass a series as long as colLvs is None.
    indexLvs: list. Expected levels of the index. If None, is not checked
    colLvs: list. Expected levels of the columns. If None, is not checked
    ignoreOrder: boolean. If true, ignore the order of the index and column
        levels
    """
    for thisCheck in [indexLvs, colLvs]:
        if (thisCheck is not None) and isinstance(thisCheck, str):
            raise TypeError('indexLvs or colLvs is not the correct type')
    if (indexLvs is None) and (colLvs is None):
        raise ValueError("No check was requested")

    checks = []
    if indexLvs is not None:
        checks.append(('index', indexLvs, list(df.index.names)))
    if colLvs is not None:
        checks.append(('columns', colLvs, list(df.columns.names)))

    for axis, expected, actual in checks:
        expected = list(expected)
        if ignoreOrder:
            expected = sorted(expected)
            actual = sorted(actual)
        if expected != actual:
            raise mkDfLvsException(axis, expected, actual)


def mkDfLvsException(axis, expectedLevels, actualLevels):
    """
    INPUT
    axis: str. 'index' or 'columns'
    """
    txt = ('Dataframe check failure: {} levels did not match the expected.'+
            '\nExpected: {}'+
            '\nActual: {}')
    return AssertionError(txt.format(axis.capitalize(), expectedLevels,
                                     actualLevels))


def dropMissing(data: pd.DataFrame, cols) -> pd.DataFrame:
    """ Copy of the data with all rows removed that have a missing value in
    any of the named columns. The index is reset.
    """
    cols = asColList(cols)
    checkColumns(data, cols)
    keep = data[cols].notna().all(axis=1)
    return data.loc[keep, :].reset_index(drop=True)
