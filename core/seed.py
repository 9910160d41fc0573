"""Demo catalogue loaded into an empty store on first start."""

from __future__ import annotations

DEMO_TOPICS: tuple[dict, ...] = (
    {
        "title": "Latest AI Breakthroughs in 2024",
        "description": "Discover the most significant AI developments this year",
        "category": "Technology",
        "read_time": "2 min read",
        "icon": "fas fa-fire",
        "view_count": 1250,
    },
    {
        "title": "Sustainable Investment Strategies",
        "description": "How to build an eco-friendly investment portfolio",
        "category": "Finance",
        "read_time": "4 min read",
        "icon": "fas fa-leaf",
        "view_count": 890,
    },
    {
        "title": "Hidden Gems in Southeast Asia",
        "description": "Off-the-beaten-path destinations for adventurous travelers",
        "category": "Travel",
        "read_time": "6 min read",
        "icon": "fas fa-map-marked-alt",
        "view_count": 567,
    },
    {
        "title": "Quantum Computing Fundamentals",
        "description": "Understanding the basics of quantum computation",
        "category": "Academic",
        "read_time": "8 min read",
        "icon": "fas fa-graduation-cap",
        "view_count": 432,
    },
    {
        "title": "Best Tech Deals This Week",
        "description": "Top technology products with significant discounts",
        "category": "Shopping",
        "read_time": "3 min read",
        "icon": "fas fa-shopping-cart",
        "view_count": 1120,
    },
    {
        "title": "Mental Health in Remote Work",
        "description": "Strategies for maintaining wellbeing while working from home",
        "category": "Health",
        "read_time": "5 min read",
        "icon": "fas fa-heartbeat",
        "view_count": 678,
    },
)

DEMO_SPACES: tuple[dict, ...] = (
    {
        "title": "Business Strategy",
        "description": "Market analysis, competitive research, and business planning",
        "category": "Business",
        "template_count": 12,
        "icon": "fas fa-briefcase",
        "gradient": "from-blue-500 to-purple-600",
        "tags": ["SWOT Analysis", "Market Research"],
    },
    {
        "title": "Developer Tools",
        "description": "Code review, debugging, and technical documentation",
        "category": "Technology",
        "template_count": 8,
        "icon": "fas fa-code",
        "gradient": "from-green-500 to-teal-600",
        "tags": ["Code Review", "Documentation"],
    },
    {
        "title": "Creative Writing",
        "description": "Content creation, storytelling, and copywriting assistance",
        "category": "Creative",
        "template_count": 15,
        "icon": "fas fa-pen-fancy",
        "gradient": "from-orange-500 to-red-600",
        "tags": ["Blog Posts", "Marketing Copy"],
    },
)
