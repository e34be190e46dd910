""" Statistical tests run by the plotters, and the mathtext subtitles and
captions that display their results.

Results are returned as StatResult instances so that the subtitle builder does
not need to know which test produced them.
"""
import logging
from dataclasses import dataclass
import numpy as np
import pandas as pd
import scipy.stats as spStats
from scipy.special import betaln, gammaln, hyp2f1
from . import helpers
from .config import StatType, normaliseOption, BOOT_SEED

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatResult:
    """ Outcome of a single statistical test.

    ATTRIBUTES
    method: str. Human readable name of the test.
    statName: str. Mathtext for the test statistic, e.g. 't_{\\mathrm{Student}}'.
    statistic: float.
    df: None | float. Degrees of freedom, if the statistic has them.
    pValue: float.
    estimateName: str. Mathtext for the effect size or estimate.
    estimate: float.
    ciLow, ciHigh: float. Confidence interval of the estimate. NaN if not
        available.
    confLevel: float.
    n: int. Number of observations used.
    nName: str. Subscript describing what was counted ('pairs', 'obs').
    logBF01: None | float. Natural log of the Bayes factor in favour of the
        null. Only set by Bayesian tests.
    bfPrior: None | float. Prior width used for the Bayes factor.
    """
    method: str
    statName: str
    statistic: float
    df: float | None
    pValue: float
    estimateName: str
    estimate: float
    ciLow: float
    ciHigh: float
    confLevel: float
    n: int
    nName: str
    logBF01: float | None = None
    bfPrior: float | None = None


def _fisherCi(r, n, confLevel, se):
    """ Confidence interval for a correlation using the Fisher z transform
    with standard error se on the z scale.
    """
    if n <= 3:
        return np.nan, np.nan
    crit = spStats.norm.ppf((1 + confLevel) / 2)
    with np.errstate(divide='ignore'):
        z = np.arctanh(r)
    return float(np.tanh(z - crit*se)), float(np.tanh(z + crit*se))


def percBendCorr(x, y, beta: float = 0.2):
    """ Percentage bend correlation (Wilcox, 1994).

    INPUT
    x, y: 1D arrays of equal length.
    beta: scalar between 0 and 0.5. Bending constant. Larger values give
        more weight to downweighting extreme values.

    OUTPUT
    r: Correlation coefficient.
    t: t statistic with len(x) - 2 degrees of freedom.
    p: Two-sided p-value.
    """
    assert 0 <= beta <= 0.5
    data = np.column_stack((x, y)).astype(float)
    n = data.shape[0]
    median = np.median(data, axis=0)
    absDev = np.sort(np.abs(data - median), axis=0)
    m = int(np.floor((1 - beta) * n))
    omega = absDev[m - 1, :]
    if np.any(omega == 0):
        raise ValueError('Too many tied values to compute the percentage '+
                         'bend correlation. More than a proportion '+
                         f'{1 - beta} of the values in a column equal its '+
                         'median.')

    scaled = np.zeros_like(data)
    for col in [0, 1]:
        psi = (data[:, col] - median[col]) / omega[col]
        lower = psi < -1
        upper = psi > 1
        inner = data[~(lower | upper), col]
        bendLoc = (np.sum(inner) + omega[col]*(np.sum(upper) - np.sum(lower)))\
            / len(inner)
        scaled[:, col] = np.clip((data[:, col] - bendLoc) / omega[col], -1, 1)

    a, b = scaled[:, 0], scaled[:, 1]
    r = np.sum(a*b) / np.sqrt(np.sum(a**2) * np.sum(b**2))
    with np.errstate(divide='ignore'):
        t = r * np.sqrt((n - 2) / (1 - r**2))
    p = 2 * spStats.t.sf(np.abs(t), n - 2)
    return float(r), float(t), float(p)


def logBf01Corr(r: float, n: int, bfPrior: float = 0.707) -> float:
    """ Natural log of the Bayes factor in favour of no correlation, using a
    stretched beta prior on the correlation (Ly, Verhagen & Wagenmakers,
    2016).

    INPUT
    r: Observed Pearson correlation.
    n: Number of pairs.
    bfPrior: Prior width. The prior is a beta(1/bfPrior, 1/bfPrior)
        distribution stretched to the interval [-1, 1].
    """
    kappa = bfPrior
    a = (n - 1) / 2
    c = (n + 2/kappa) / 2
    # Euler's transformation keeps the hypergeometric term finite for
    # large n and r close to +/-1.
    with np.errstate(divide='ignore'):
        logHyp = ((c - 2*a) * np.log1p(-r**2)
                  + np.log(hyp2f1(c - a, c - a, c, r**2)))
    logBf10 = ((1 - 2/kappa) * np.log(2) + 0.5*np.log(np.pi)
               - betaln(1/kappa, 1/kappa)
               + gammaln((n + 2/kappa - 1) / 2)
               - gammaln((n + 2/kappa) / 2)
               + logHyp)
    return float(-logBf10)


def corrTest(data: pd.DataFrame, x: str, y: str,
             type: str | StatType = 'parametric',
             confLevel: float = 0.95, beta: float = 0.1, nBoot: int = 100,
             bfPrior: float = 0.707) -> StatResult:
    """ Test for an association between two numeric columns.

    INPUT
    data: pandas dataframe. Rows with a missing x or y value are ignored.
    x, y: str. Names of the numeric columns.
    type: str | StatType. Which test to run...
        'parametric': Pearson correlation.
        'nonparametric': Spearman correlation.
        'robust': Percentage bend correlation, with bending constant beta,
            and percentile bootstrap confidence interval from nBoot resamples.
        'bayes': Bayes factor for the Pearson correlation with prior width
            bfPrior.
    confLevel: float. Confidence level of the interval.
    """
    type = normaliseOption(type, StatType)
    data = helpers.dropMissing(data, [x, y])
    xVals = data[x].to_numpy(dtype=float)
    yVals = data[y].to_numpy(dtype=float)
    n = len(xVals)
    if n < 3:
        raise ValueError(f'Need at least 3 complete pairs, found {n}.')

    if type in [StatType.PARAMETRIC, StatType.BAYES]:
        r, p = spStats.pearsonr(xVals, yVals)
        r = float(r)
        with np.errstate(divide='ignore'):
            t = r * np.sqrt((n - 2) / (1 - r**2))
        ciLow, ciHigh = _fisherCi(r, n, confLevel, 1/np.sqrt(max(n - 3, 1)))

        if type == StatType.PARAMETRIC:
            return StatResult('Pearson correlation', r't_{\mathrm{Student}}',
                              float(t), n - 2, float(p),
                              r'\widehat{r}_{\mathrm{Pearson}}', r,
                              ciLow, ciHigh, confLevel, n, 'pairs')
        return StatResult('Bayesian Pearson correlation',
                          r't_{\mathrm{Student}}', float(t), n - 2, float(p),
                          r'\widehat{r}_{\mathrm{Pearson}}', r,
                          ciLow, ciHigh, confLevel, n, 'pairs',
                          logBF01=logBf01Corr(r, n, bfPrior),
                          bfPrior=bfPrior)

    if type == StatType.NONPARAMETRIC:
        rho, p = spStats.spearmanr(xVals, yVals)
        rho = float(rho)
        sStat = (n**3 - n) * (1 - rho) / 6
        se = np.sqrt((1 + rho**2 / 2) / max(n - 3, 1))
        ciLow, ciHigh = _fisherCi(rho, n, confLevel, se)
        return StatResult('Spearman correlation', r'\log_{e}(S)',
                          float(np.log(sStat)) if sStat > 0 else -np.inf,
                          None, float(p),
                          r'\widehat{\rho}_{\mathrm{Spearman}}', rho,
                          ciLow, ciHigh, confLevel, n, 'pairs')

    if type == StatType.ROBUST:
        r, t, p = percBendCorr(xVals, yVals, beta=beta)
        rng = np.random.default_rng(BOOT_SEED)
        bootR = np.full(nBoot, np.nan)
        for iBoot in range(nBoot):
            idx = rng.integers(0, n, size=n)
            try:
                bootR[iBoot] = percBendCorr(xVals[idx], yVals[idx],
                                            beta=beta)[0]
            except ValueError:
                # Resample with too many ties. Left out of the interval.
                pass
        nFailed = np.sum(np.isnan(bootR))
        if nFailed > 0:
            logger.info(f'{nFailed} of {nBoot} bootstrap resamples had too '+
                        'many ties and were excluded from the interval.')
        tail = (1 - confLevel) / 2 * 100
        if np.all(np.isnan(bootR)):
            ciLow, ciHigh = np.nan, np.nan
        else:
            ciLow, ciHigh = np.nanpercentile(bootR, [tail, 100 - tail])
        return StatResult('Percentage bend correlation',
                          r't_{\mathrm{Student}}', t, n - 2, p,
                          r'\widehat{\rho}_{\mathrm{pb}}', r,
                          float(ciLow), float(ciHigh), confLevel, n, 'pairs')

    raise AssertionError('Bug')


def gofTest(counts, ratio=None) -> StatResult:
    """ Chi-squared goodness of fit test on the counts of each level of a
    categorical variable.

    INPUT
    counts: 1D array-like of int. Observed count for each level.
    ratio: None | 1D array-like. Expected proportion for each level, in the
        same order as counts. Must sum to 1. If None, equal proportions are
        expected.
    """
    counts = np.asarray(counts, dtype=float)
    n = int(np.sum(counts))
    nLevels = len(counts)
    if nLevels < 2:
        raise ValueError('Goodness of fit test needs at least two levels.')
    if ratio is None:
        expected = None
    else:
        ratio = np.asarray(ratio, dtype=float)
        if (len(ratio) != nLevels) or (not np.isclose(np.sum(ratio), 1)):
            raise helpers.InvalidConfigurationError(
                'ratio must have one proportion per level and sum to 1.')
        expected = ratio * n

    test = spStats.chisquare(counts, f_exp=expected)
    cramerV = np.sqrt(test.statistic / (n * (nLevels - 1)))
    return StatResult('Chi-squared goodness of fit test',
                      r'\chi^2_{\mathrm{gof}}', float(test.statistic),
                      nLevels - 1, float(test.pvalue),
                      r'\widehat{V}_{\mathrm{Cramer}}', float(cramerV),
                      np.nan, np.nan, 0.95, n, 'obs')


def contingencyTest(data: pd.DataFrame, main: str,
                    condition: str) -> None | StatResult:
    """ Pearson's chi-squared test of independence between two categorical
    columns, without continuity correction. Rows with a missing value in
    either column are ignored.

    OUTPUT
    StatResult, or None if the contingency table has fewer than two rows or
    columns, in which case the test is not defined.
    """
    data = helpers.dropMissing(data, [main, condition])
    table = pd.crosstab(data[main], data[condition])
    if min(table.shape) < 2:
        logger.info('Contingency table of %s by %s has shape %s; '+
                    'independence test skipped.', main, condition,
                    table.shape)
        return None

    chi2, p, dof, _ = spStats.chi2_contingency(table.to_numpy(),
                                               correction=False)
    n = int(table.to_numpy().sum())
    cramerV = np.sqrt(chi2 / (n * (min(table.shape) - 1)))
    return StatResult("Pearson's chi-squared test",
                      r'\chi^2_{\mathrm{Pearson}}', float(chi2), int(dof),
                      float(p), r'\widehat{V}_{\mathrm{Cramer}}',
                      float(cramerV), np.nan, np.nan, 0.95, n, 'obs')


def oneSampleTest(data: pd.DataFrame, x: str, testValue: float = 0,
                  type: str | StatType = 'parametric',
                  confLevel: float = 0.95) -> StatResult:
    """ Test whether the centre of a numeric column differs from testValue.

    INPUT
    data: pandas dataframe. Missing values of x are ignored.
    x: str. Numeric column.
    testValue: scalar. Value under the null hypothesis.
    type: str | StatType. 'parametric' for a one-sample t-test (effect size
        Cohen's d with a t-based interval for the mean difference), or
        'nonparametric' for a Wilcoxon signed-rank test (effect size matched
        rank-biserial correlation). Other types are not supported.
    """
    type = normaliseOption(type, StatType)
    vals = helpers.dropMissing(data, x)[x].to_numpy(dtype=float)
    n = len(vals)
    if n < 2:
        raise ValueError(f'Need at least 2 observations, found {n}.')
    diffs = vals - testValue

    if type == StatType.PARAMETRIC:
        test = spStats.ttest_1samp(vals, popmean=testValue)
        sd = np.std(vals, ddof=1)
        cohenD = np.mean(diffs) / sd if sd > 0 else np.nan
        crit = spStats.t.ppf((1 + confLevel) / 2, n - 1)
        sem = sd / np.sqrt(n)
        ciLow = (np.mean(diffs) - crit*sem) / sd if sd > 0 else np.nan
        ciHigh = (np.mean(diffs) + crit*sem) / sd if sd > 0 else np.nan
        return StatResult('One sample t-test', r't_{\mathrm{Student}}',
                          float(test.statistic), n - 1, float(test.pvalue),
                          r'\widehat{d}_{\mathrm{Cohen}}', float(cohenD),
                          float(ciLow), float(ciHigh), confLevel, n, 'obs')

    if type == StatType.NONPARAMETRIC:
        nonZero = diffs[diffs != 0]
        test = spStats.wilcoxon(nonZero)
        ranks = spStats.rankdata(np.abs(nonZero))
        total = np.sum(ranks)
        rankBis = (np.sum(ranks[nonZero > 0]) - np.sum(ranks[nonZero < 0])) \
            / total
        vStat = float(np.sum(ranks[nonZero > 0]))
        return StatResult('Wilcoxon signed-rank test',
                          r'\log_{e}(V_{\mathrm{Wilcoxon}})',
                          float(np.log(vStat)) if vStat > 0 else -np.inf,
                          None, float(test.pvalue),
                          r'\widehat{r}_{\mathrm{biserial}}^{\mathrm{rank}}',
                          float(rankBis), np.nan, np.nan, confLevel, n, 'obs')

    raise helpers.InvalidConfigurationError(
        f'One sample tests support parametric and nonparametric types, '+
        f'not {type.value}.')


def pValueText(pValue: float, k: int = 3) -> str:
    """ Mathtext for a p-value in a subtitle: 'p < 0.001' for very small
    values, otherwise 'p = ' followed by k decimals.
    """
    if pValue < 0.001:
        return r'$p < 0.001$'
    return f'$p = {helpers.specifyDecimal(pValue, k)}$'


def testSubtitle(result: StatResult, k: int = 2,
                 statTitle: None | str = None) -> str:
    """ Mathtext subtitle summarising a test result. Bayesian results show
    the Bayes factor in place of the frequentist statistic and p-value.
    """
    parts = []
    if statTitle is not None:
        parts.append(statTitle)

    if result.logBF01 is not None:
        parts.append(r'$\log_{e}(\mathrm{BF}_{01}) = ' +
                     helpers.specifyDecimal(result.logBF01, k) + '$')
    else:
        statTxt = helpers.specifyDecimal(result.statistic, k)
        if result.df is None:
            parts.append(f'${result.statName} = {statTxt}$')
        else:
            dfTxt = helpers.roundedStr(result.df, k)
            parts.append(f'${result.statName}({dfTxt}) = {statTxt}$')
        parts.append(pValueText(result.pValue, k=max(k, 3)))

    parts.append(f'${result.estimateName} = '+
                 helpers.specifyDecimal(result.estimate, k) + '$')
    if not (np.isnan(result.ciLow) or np.isnan(result.ciHigh)):
        level = helpers.roundedStr(result.confLevel * 100, 0)
        parts.append(r'$\mathrm{CI}_{' + level + r'\%}$ [' +
                     helpers.specifyDecimal(result.ciLow, k) + ', ' +
                     helpers.specifyDecimal(result.ciHigh, k) + ']')
    if result.bfPrior is not None:
        parts.append(r'$r_{\mathrm{prior}}^{\mathrm{beta}} = ' +
                     helpers.specifyDecimal(result.bfPrior, k) + '$')
    parts.append(r'$n_{\mathrm{' + result.nName + '}} = ' +
                 str(result.n) + '$')
    return ', '.join(parts)


def bfCorrCaption(data: pd.DataFrame, x: str, y: str,
                  bfPrior: float = 0.707, k: int = 2,
                  caption: None | str = None) -> str:
    """ Caption giving the evidence in favour of no correlation between x
    and y.

    INPUT
    caption: None | str. If provided, placed on a line above the Bayes
        factor text.
    """
    data = helpers.dropMissing(data, [x, y])
    r, _ = spStats.pearsonr(data[x].to_numpy(dtype=float),
                            data[y].to_numpy(dtype=float))
    logBF01 = logBf01Corr(float(r), len(data), bfPrior)
    txt = (r'In favor of null: $\log_{e}(\mathrm{BF}_{01}) = ' +
           helpers.specifyDecimal(logBF01, k) + r'$, ' +
           r'$r_{\mathrm{prior}}^{\mathrm{beta}} = ' +
           helpers.specifyDecimal(bfPrior, k) + '$')
    if caption is not None:
        txt = caption + '\n' + txt
    return txt
