import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import pytest


@pytest.fixture(autouse=True)
def closeFigures():
    yield
    plt.close('all')
