from __future__ import annotations

import pytest

from cacheprobe.agents.toolbox import Toolbox
from cacheprobe.models.investigation import InvestigationConfig, InvestigationSession
from fakes import BASE_URL, HOMEPAGE_HTML, FakeWeb


@pytest.fixture
def web() -> FakeWeb:
    return FakeWeb(pages={f"{BASE_URL}/": HOMEPAGE_HTML})


@pytest.fixture
def toolbox(web: FakeWeb) -> Toolbox:
    return Toolbox(collaborators=web.collaborators(), experiment_delay_ms=0)


@pytest.fixture
def session() -> InvestigationSession:
    return InvestigationSession.start(InvestigationConfig(base_url=BASE_URL, timeout_ms=5000))
