from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from alertbridge.schemas.broker import BrokerOrder, BrokerPosition, OrderParams, PlacedOrder, Quote


class BrokerClient(ABC):
    """
    Abstract Base Class for brokerage clients.

    Every call takes the user's access token explicitly; clients hold no
    per-user state, so one instance serves the whole process. Failures are
    raised as ``BrokerError``.
    """

    name: str = "broker"

    @abstractmethod
    async def place_order(self, access_token: str, params: OrderParams) -> PlacedOrder:
        """Submit an order and return the broker's order id."""
        pass

    @abstractmethod
    async def get_order_book(self, access_token: str) -> List[BrokerOrder]:
        """Fetch today's orders, normalized."""
        pass

    @abstractmethod
    async def get_positions(self, access_token: str) -> List[BrokerPosition]:
        """Fetch the broker's net positions."""
        pass

    @abstractmethod
    async def get_balance(self, access_token: str) -> Dict[str, Any]:
        """Fetch available funds."""
        pass

    @abstractmethod
    async def get_quotes(self, access_token: str, symbols: List[str]) -> Dict[str, Quote]:
        """Fetch last traded prices keyed by the caller's symbol."""
        pass

    @abstractmethod
    async def cancel_order(self, access_token: str, order_id: str) -> Dict[str, Any]:
        """Cancel a pending order."""
        pass

    @abstractmethod
    async def refresh_access_token(self, refresh_token: str, pin: Optional[str] = None) -> str:
        """Exchange a refresh token for a new access token."""
        pass

    async def aclose(self) -> None:
        """Release network resources."""
        pass
