"""Static conversation content: persona, profile questions and the bootstrap prompt."""

import os
import re

from travel_chat.llm.chat.models import ChatSessionConfig, Profile, Question

GEMINI_MODEL = "gemini-2.5-flash"

SYSTEM_INSTRUCTION = """You are "Penny", an AI travel assistant who specialises in cutting travel costs.

Role: help the user get the most satisfying trip possible for the least money by giving strategic, practical advice.

Core strengths:
1. Budget-friendly travel tips
2. Low-cost flights, lodging, food and activities
3. Seasonal price analysis
4. Coupons, discounts and promotions
5. Hidden gems: free or cheap sights

Conversation style:
- Friendly and upbeat
- Practical and specific
- Respect the user's budget
- A bit of humour alongside the money-saving tips

Cover, where relevant:
- When and how to buy plane tickets
- Lodging choices (guesthouses, short-term rentals, budget hotels)
- Getting around locally (public transport, night buses)
- Local food versus tourist-area food prices
- Free and low-cost attractions
- Monthly and seasonal price swings
- Exchange rates and cost of living
- Keeping visa costs down
- Choosing travel insurance

Ground rules:
- Never compromise on safety or health
- Never recommend scams or unsafe options
- Encourage sustainable travel and respect for local culture
- Do not over-promote specific brands or services"""

INITIAL_QUESTIONS: list[Question] = [
    Question(
        id="q1",
        text="Where would you like to travel? (country/city)",
        type="text",
        key="destination",
    ),
    Question(
        id="q2",
        text="When are you planning to travel? (e.g. October 1 - October 7)",
        type="text",
        key="dateRange",
    ),
    Question(
        id="q3",
        text="How many people are travelling?",
        type="number",
        key="partySize",
    ),
    Question(
        id="q4",
        text="What is your total budget for the trip? (numbers only)",
        type="number",
        key="budget",
    ),
    Question(
        id="q5",
        text="What travel style do you prefer? (e.g. backpacking, mid-range, budget luxury)",
        type="text",
        key="style",
    ),
    Question(
        id="q6",
        text="Anything you are especially interested in? (e.g. food, culture, nature, activities)",
        type="text",
        key="interests",
    ),
]

# Placeholders must match the Profile field aliases
INITIAL_PROMPT_TEMPLATE = """Here is the trip I am planning:
- Destination: {destination}
- Dates: {dateRange}
- Travellers: {partySize}
- Total budget: {budget}
- Travel style: {style}
- Special interests: {interests}

Based on this, please give me specific, practical advice so I can save as much as possible while still having a great trip. Cover flights, lodging, food, activities and local transport, and recommend any free or low-cost sights worth visiting."""


TOKEN_PATTERN = re.compile(r"\{(\w+)\}")


def render_bootstrap_prompt(profile: Profile, template: str = INITIAL_PROMPT_TEMPLATE) -> str:
    """Fill the bootstrap template with the profile's values.

    Each ``{token}`` is replaced literally, once. Tokens with no matching
    profile field are left as they are.
    """
    values = profile.template_values()
    used: set[str] = set()

    def substitute(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in values or key in used:
            return match.group(0)
        used.add(key)
        return values[key]

    # Single pass, so inserted values are never searched for tokens
    return TOKEN_PATTERN.sub(substitute, template)


def default_session_config() -> ChatSessionConfig:
    """Session configuration for the travel assistant."""
    return ChatSessionConfig(
        model=os.getenv("GEMINI_MODEL", GEMINI_MODEL),
        system_instruction=SYSTEM_INSTRUCTION,
        temperature=0.9,
        top_p=0.95,
        top_k=64,
    )
