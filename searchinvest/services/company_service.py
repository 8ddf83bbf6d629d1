"""
公司信息服务
公司资料与基本面（company:<TICKER>），TTL 为小时级
"""

from searchinvest.layers.cache import make_key
from searchinvest.services.base import DataResult, DomainService, normalize_ticker

_NS = "company"


class CompanyService(DomainService):
    domain = _NS

    async def get_company_info(self, ticker: str, force_refresh: bool = False) -> DataResult:
        symbol = normalize_ticker(ticker)
        key = make_key(_NS, symbol)
        return await self._resolve(
            key, lambda: self._client.fetch(symbol), force_refresh=force_refresh
        )
