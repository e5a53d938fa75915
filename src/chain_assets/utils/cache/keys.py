"""Deterministic cache key builders.

Every caller-visible parameter that changes a result is folded into its key;
addresses are lowercased.
"""


class CacheKeys:
    @staticmethod
    def nft_list(
        chain_id: int,
        address: str,
        contract: str | None = None,
        page_key: str | None = None,
        page_size: int | None = None,
        limit: int | None = None,
    ) -> str:
        key = f"nft_list:{chain_id}:{address.lower()}"
        if contract:
            key = f"{key}:{contract.lower()}"
        if page_key or page_size:
            key = f"{key}:page={page_key or ''}:size={page_size or ''}"
        if limit:
            key = f"{key}:limit={limit}"
        return key

    @staticmethod
    def transactions(chain_id: int, address: str, limit: int) -> str:
        return f"transactions:{chain_id}:{address.lower()}:{limit}"

    @staticmethod
    def balance(chain_id: int, address: str) -> str:
        return f"balance:{chain_id}:{address.lower()}"

    @staticmethod
    def token_balance(chain_id: int, token: str, owner: str) -> str:
        return f"token_balance:{chain_id}:{token.lower()}:{owner.lower()}"

    @staticmethod
    def classification(chain_id: int, contract: str) -> str:
        return f"classification:{chain_id}:{contract.lower()}"

    @staticmethod
    def collection(chain_id: int, contract: str) -> str:
        return f"collection:{chain_id}:{contract.lower()}"

    @staticmethod
    def floor_price(chain_id: int, contract: str) -> str:
        return f"floor_price:{chain_id}:{contract.lower()}"

    @staticmethod
    def token_price(symbol: str) -> str:
        return f"price:{symbol.upper()}"

    @staticmethod
    def rate_limit(identity: str, window: int) -> str:
        return f"ratelimit:{identity}:{window}"
