import datetime

# Demo accounts, all share the same password when seeded
DEMO_PASSWORD = "password123"

demo_users: list[dict] = [
    {
        "id": "admin-1",
        "name": "Admin User",
        "email": "admin@eventify.com",
        "role": "admin",
    },
    {
        "id": "student-1",
        "name": "Student User",
        "email": "student@eventify.com",
        "role": "student",
    },
    {
        "id": "student-2",
        "name": "Priya Raman",
        "email": "priya@eventify.com",
        "role": "student",
    },
]

demo_events: list[dict] = [
    {
        "title": "Tech Conference 2025",
        "description": "A gathering of tech professionals from around the world to discuss the latest trends and innovations.",
        "date": datetime.datetime(2025, 6, 15, 9, 0),
        "location": "Tech Center, Building A",
        "total_slots": 100,
        "image": "https://images.unsplash.com/photo-1540575467063-178a50c2df87?q=80&w=1000",
        "department": "Technology",
    },
    {
        "title": "Marketing Workshop",
        "description": "Learn the latest marketing strategies and techniques from industry experts.",
        "date": datetime.datetime(2025, 7, 20, 13, 0),
        "location": "Marketing Hub",
        "total_slots": 50,
        "image": "https://images.unsplash.com/photo-1556761175-4b46a572b786?q=80&w=1000",
        "department": "Marketing",
    },
    {
        "title": "Leadership Summit",
        "description": "Develop your leadership skills with our intensive summit designed for emerging leaders.",
        "date": datetime.datetime(2025, 8, 10, 10, 0),
        "location": "Executive Center",
        "total_slots": 75,
        "image": "https://images.unsplash.com/photo-1552664730-d307ca884978?q=80&w=1000",
        "department": "Management",
    },
    {
        "title": "Hackathon Finals",
        "description": "Teams of up to five build and demo a working prototype in 24 hours.",
        "date": datetime.datetime(2025, 9, 5, 9, 30),
        "location": "Innovation Lab",
        "total_slots": 20,
        "image": "https://images.unsplash.com/photo-1523580494863-6f3031224c94",
        "department": "Technology",
    },
]
