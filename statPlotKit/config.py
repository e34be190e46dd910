""" Defaults and option types shared by the summaries and the plotters.

Options that only accept a closed set of values are enums. Each enum has one
alias table mapping the strings users may pass to a single member. Use
normaliseOption at the API boundary so the rest of the code only ever sees
enum members.
"""
from enum import Enum
from .helpers import InvalidConfigurationError


class LabelContent(Enum):
    PERCENTAGE = 'percentage'
    COUNTS = 'counts'
    BOTH = 'both'


class StatType(Enum):
    PARAMETRIC = 'parametric'
    NONPARAMETRIC = 'nonparametric'
    ROBUST = 'robust'
    BAYES = 'bayes'


class Centrality(Enum):
    NONE = 'none'
    MEAN = 'mean'
    MEDIAN = 'median'


class MarginalType(Enum):
    HISTOGRAM = 'histogram'
    BOXPLOT = 'boxplot'
    DENSITY = 'density'
    VIOLIN = 'violin'
    DENSIGRAM = 'densigram'


class Margins(Enum):
    BOTH = 'both'
    X = 'x'
    Y = 'y'


class Output(Enum):
    PLOT = 'plot'
    SUBTITLE = 'subtitle'
    CAPTION = 'caption'


ALIASES = {
    LabelContent: {
        'percentage': LabelContent.PERCENTAGE,
        'perc': LabelContent.PERCENTAGE,
        'proportion': LabelContent.PERCENTAGE,
        'prop': LabelContent.PERCENTAGE,
        '%': LabelContent.PERCENTAGE,
        'counts': LabelContent.COUNTS,
        'count': LabelContent.COUNTS,
        'n': LabelContent.COUNTS,
        'N': LabelContent.COUNTS,
        'both': LabelContent.BOTH,
        'mix': LabelContent.BOTH,
        'all': LabelContent.BOTH,
        'everything': LabelContent.BOTH,
    },
    StatType: {
        'parametric': StatType.PARAMETRIC,
        'p': StatType.PARAMETRIC,
        'pearson': StatType.PARAMETRIC,
        'nonparametric': StatType.NONPARAMETRIC,
        'np': StatType.NONPARAMETRIC,
        'spearman': StatType.NONPARAMETRIC,
        'robust': StatType.ROBUST,
        'r': StatType.ROBUST,
        'bayes': StatType.BAYES,
        'bf': StatType.BAYES,
        'bayesian': StatType.BAYES,
    },
    Centrality: {
        None: Centrality.NONE,
        False: Centrality.NONE,
        'none': Centrality.NONE,
        True: Centrality.MEAN,
        'mean': Centrality.MEAN,
        'median': Centrality.MEDIAN,
    },
    MarginalType: {thisType.value: thisType for thisType in MarginalType},
    Margins: {thisMargin.value: thisMargin for thisMargin in Margins},
    Output: {thisOutput.value: thisOutput for thisOutput in Output},
}


def normaliseOption(value, enumType):
    """ Convert a user supplied option into a member of enumType.

    INPUT
    value: enum member | str | bool | None. The option as passed by the user.
        Members of enumType are returned unchanged.
    enumType: One of the option enums defined in this module.

    OUTPUT
    Member of enumType.
    """
    if isinstance(value, enumType):
        return value

    aliases = ALIASES[enumType]
    # bools hash equal to 0 and 1, so look them up by identity first
    if isinstance(value, bool) or value is None:
        matches = [member for key, member in aliases.items() if key is value]
        if matches:
            return matches[0]
    elif isinstance(value, str) and (value in aliases):
        return aliases[value]

    recognised = [repr(key) for key in aliases.keys()]
    raise InvalidConfigurationError(
        f'Unrecognised {enumType.__name__} option {value!r}. '+
        f'Recognised values are: {", ".join(recognised)}')


# Scatterplot
DEFAULT_X_FILL = '#009E73'
DEFAULT_Y_FILL = '#D55E00'
DEFAULT_POINT_COLOUR = 'black'
DEFAULT_LINE_COLOUR = 'blue'
JITTER_SEED = 123

# Palettes used when explicit colours are switched off
DEFAULT_PACKAGE = 'matplotlib'
DEFAULT_PALETTE = 'Dark2'

# Robust correlation bootstrap
BOOT_SEED = 123

# Significance stars for proportion tests, as (upper p-value bound, label)
SIGNIFICANCE_LEVELS = [(0.001, '***'), (0.01, '**'), (0.05, '*')]
