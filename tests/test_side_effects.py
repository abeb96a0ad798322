from retailhub.utils import best_effort
from tests.conftest import run


def test_best_effort_returns_result():
    async def ok():
        return 'done'

    assert run(best_effort(ok(), 'ok')) == 'done'


def test_best_effort_swallows_failure():
    async def boom():
        raise ValueError('nope')

    assert run(best_effort(boom(), 'boom')) is None
