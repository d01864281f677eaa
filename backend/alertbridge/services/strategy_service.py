"""
Strategy Service

Creates and updates user strategies. Configuration documents are validated
into ``StrategyConfig`` here, once, and stored with every default filled in
so the execution pipeline never sees a malformed document.
"""

from typing import Any, Dict, List, Optional

from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from alertbridge.core.exceptions import ValidationError
from alertbridge.db.models import Strategy
from alertbridge.db.repositories import StrategyRepository
from alertbridge.schemas.strategy import StrategyConfig


def validate_config(config: Dict[str, Any]) -> StrategyConfig:
    """Parse a raw configuration document or raise ``ValidationError``."""
    try:
        return StrategyConfig.model_validate(config or {})
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid strategy configuration: {problems}") from e


class StrategyService:
    """Strategy CRUD on top of ``StrategyRepository``. Commits are the caller's."""

    def __init__(self, session: AsyncSession):
        self.repo = StrategyRepository(session)

    async def save_strategy(
        self,
        user_id: int,
        name: str,
        config: Dict[str, Any],
        description: Optional[str] = None,
        is_active: bool = False,
        strategy_id: Optional[int] = None,
    ) -> Strategy:
        """Create a strategy, or update ``strategy_id`` when given."""
        document = validate_config(config).to_document()

        if strategy_id is None:
            strategy = await self.repo.create(
                user_id=user_id,
                name=name,
                description=description,
                config=document,
                is_active=is_active,
            )
            logger.bind(user_id=user_id, strategy_id=strategy.id).info(f"Created strategy '{name}'")
            return strategy

        strategy = await self.repo.get(strategy_id)
        if strategy is None or strategy.user_id != user_id:
            raise ValidationError(f"Strategy {strategy_id} not found")
        await self.repo.update(
            strategy, name=name, description=description, config=document, is_active=is_active
        )
        logger.bind(user_id=user_id, strategy_id=strategy.id).info(f"Updated strategy '{name}'")
        return strategy

    async def set_active(self, user_id: int, strategy_id: int, is_active: bool) -> Strategy:
        strategy = await self.repo.get(strategy_id)
        if strategy is None or strategy.user_id != user_id:
            raise ValidationError(f"Strategy {strategy_id} not found")
        return await self.repo.update(strategy, is_active=is_active)

    async def list_active(self, user_id: int) -> List[Strategy]:
        return await self.repo.get_active_for_user(user_id)
