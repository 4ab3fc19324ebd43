"""
Base Data Access Object (DAO) class.

WHY: The DAO pattern separates database operations from business logic,
so services hold billing rules and never build SQL themselves.
"""

from typing import Generic, TypeVar, Type, Optional, Any
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from parish_billing.models.base import Base

# Type variable for model class
ModelType = TypeVar("ModelType", bound=Base)


class BaseDAO(Generic[ModelType]):
    """
    Base Data Access Object shared by the billing DAOs.

    WHY: Creation, lookup, and UPDATE ... RETURNING are identical for every
    billing table; subclasses add the lookups by Razorpay ids and the
    SQL-side counters.

    Type Parameters:
        ModelType: The SQLAlchemy model class this DAO manages
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        """
        Initialize DAO with model class and database session.

        Args:
            model: The SQLAlchemy model class
            session: Async database session (one per request or delivery)
        """
        self.model = model
        self.session = session

    async def create(self, **kwargs: Any) -> ModelType:
        """
        Create a new record.

        The row is flushed, not committed; the caller owns the transaction.

        Args:
            **kwargs: Field values for the new record

        Returns:
            The created model instance with database-generated fields populated

        Raises:
            IntegrityError: If unique constraints are violated
        """
        instance = self.model(**kwargs)
        self.session.add(instance)
        await self.session.flush()  # Flush to get auto-generated fields
        await self.session.refresh(instance)
        return instance

    async def get_by_id(self, id: int) -> Optional[ModelType]:
        result = await self.session.execute(select(self.model).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def get_by_field(self, field_name: str, value: Any) -> Optional[ModelType]:
        """
        Retrieve a single record by a unique field.

        Used for the Razorpay id columns, which are unique when set.

        Raises:
            AttributeError: If field_name doesn't exist on the model
        """
        if not hasattr(self.model, field_name):
            raise AttributeError(f"{self.model.__name__} has no field '{field_name}'")

        result = await self.session.execute(
            select(self.model).where(getattr(self.model, field_name) == value)
        )
        return result.scalar_one_or_none()

    async def update(self, id: int, **kwargs: Any) -> Optional[ModelType]:
        """
        Update an existing record.

        WHY: A single UPDATE ... RETURNING keeps the write atomic, and the
        refresh makes the identity-mapped instance reflect the new row.
        Column expressions (total_paid + amount) are evaluated in SQL.

        Args:
            id: Primary key of the record to update
            **kwargs: Fields to update

        Returns:
            Updated model instance if found, None otherwise
        """
        result = await self.session.execute(
            update(self.model).where(self.model.id == id).values(**kwargs).returning(self.model)
        )
        instance = result.scalar_one_or_none()
        if instance:
            await self.session.refresh(instance)
        return instance

    async def count(self, **filters: Any) -> int:
        """
        Count records matching equality filters.

        Args:
            **filters: Field name to value filters (e.g., parish_id=1)

        Returns:
            Number of records matching the filters
        """
        query = select(func.count()).select_from(self.model)
        for field, value in filters.items():
            if hasattr(self.model, field):
                query = query.where(getattr(self.model, field) == value)
        result = await self.session.execute(query)
        return result.scalar_one()
