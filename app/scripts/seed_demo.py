# Seed a restaurant, its owner and a customer, and print bearer tokens for them.
# Usage: python -m app.scripts.seed_demo
from app.models.restaurant_models import Restaurant
from app.models.user_models import User
from app.core.db import AsyncSessionLocal, init_models
from app.core.security import create_access_token
import asyncio


async def seed_demo():
    await init_models()
    async with AsyncSessionLocal() as session:
        restaurant = Restaurant(name="Demo Bistro", address="1 Main Street")
        session.add(restaurant)
        await session.flush()

        owner = User(
            name="Demo Owner",
            email="owner@demo.test",
            role="restaurant_owner",
            restaurant_id=restaurant.id,
        )
        customer = User(name="Demo Customer", email="customer@demo.test", phone="555-0100")
        session.add_all([owner, customer])
        await session.commit()

        print(f"Restaurant {restaurant.id} created")
        print(f"owner    token: {create_access_token({'sub': str(owner.id)})}")
        print(f"customer token: {create_access_token({'sub': str(customer.id)})}")


if __name__ == "__main__":
    asyncio.run(seed_demo())
