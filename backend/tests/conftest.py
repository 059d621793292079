import pytest

from dental_dx.services.diagnosis.rule_store import RuleTableStore
from dental_dx.services.diagnosis.types import SiteName


@pytest.fixture(scope="session")
def rule_store():
    store = RuleTableStore.from_directory()
    store.reload()
    return store


@pytest.fixture
def make_sites():
    def _make(probing_depth=2, gingival_margin=0, bleeding=False, plaque=False, **overrides):
        sites = {
            site.value: {
                "probing_depth": probing_depth,
                "gingival_margin": gingival_margin,
                "bleeding": bleeding,
                "plaque": plaque,
            }
            for site in SiteName
        }
        for site, values in overrides.items():
            sites[site] = {**sites[site], **values}
        return sites

    return _make
