import sys
import asyncio
from decimal import Decimal, InvalidOperation
from fieldledger.core.exceptions import LedgerError
from fieldledger.db.session import AsyncSessionLocal
from fieldledger.services.crews import register_crew


async def create_crew(name: str, lead_actor_id: int, profit_share: Decimal, session_factory=AsyncSessionLocal) -> bool:
    async with session_factory() as db:
        try:
            crew, account = await register_crew(db, name, lead_actor_id, profit_share)
        except LedgerError as e:
            print(f"Error: {e.message}")
            return False

    print(f"Crew '{crew.name}' created successfully")
    print(f"Crew ID: {crew.id}")
    print(f"Account ID: {account.id}")
    print(f"Profit share: {crew.profit_share}%")
    return True


def main():
    if len(sys.argv) < 4:
        print("Usage: python create_crew.py <name> <lead_actor_id> <profit_share>")
        sys.exit(1)

    name = sys.argv[1]
    try:
        lead_actor_id = int(sys.argv[2])
        profit_share = Decimal(sys.argv[3])
    except (ValueError, InvalidOperation):
        print("Error: lead_actor_id must be an integer and profit_share a number")
        sys.exit(1)

    success = asyncio.run(create_crew(name, lead_actor_id, profit_share))
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
