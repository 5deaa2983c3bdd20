from app.database import SessionLocal, engine, Base
from app.models import Customer, EmailCampaign, EmailQueueEntry, SentEmail, UnsubscribeToken

# Create tables
Base.metadata.create_all(bind=engine)

db = SessionLocal()

# Clear existing data
db.query(EmailQueueEntry).delete()
db.query(SentEmail).delete()
db.query(UnsubscribeToken).delete()
db.query(EmailCampaign).delete()
db.query(Customer).delete()

# Sample customers across the preference categories
customers = [
    Customer(
        email="ada@example.com",
        full_name="Ada Lovelace",
        email_preferences={"order_updates": True, "new_products": True, "sales": True, "blog": False},
    ),
    Customer(
        email="grace@example.com",
        full_name="Grace Hopper",
        email_preferences={"order_updates": True, "new_products": False, "sales": True, "blog": True},
    ),
    Customer(
        email="alan@example.com",
        full_name="Alan Turing",
        email_preferences={"order_updates": True, "new_products": False, "sales": False, "blog": True},
    ),
    Customer(
        email="edsger@example.com",
        full_name="Edsger Dijkstra",
        email_preferences={"order_updates": False, "new_products": False, "sales": False, "blog": False},
    ),
    # Never opted into the mail system
    Customer(
        email="barbara@example.com",
        full_name="Barbara Liskov",
        email_preferences=None,
    ),
]

for customer in customers:
    db.add(customer)

db.commit()
db.close()

print("Database seeded successfully!")
print(f"  - {len(customers)} customers")
