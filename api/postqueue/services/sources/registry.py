from postqueue.services.sources.base import SourceAdapter
from postqueue.services.sources.gktoday import GKTodayAdapter
from postqueue.services.sources.newsonair import NewsOnAirAdapter
from postqueue.services.sources.sarkari_result import SarkariResultAdapter

SOURCE_ADAPTERS: dict[str, SourceAdapter] = {
    adapter.key: adapter
    for adapter in (NewsOnAirAdapter(), GKTodayAdapter(), SarkariResultAdapter())
}


def get_source_adapter(key: str) -> SourceAdapter | None:
    return SOURCE_ADAPTERS.get(key)
