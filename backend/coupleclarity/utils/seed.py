"""
Default reference data and the ``flask seed`` command.
Seeding only inserts into empty tables, so it is safe to run repeatedly.
"""
import json
import logging

import click
from flask.cli import with_appcontext

from ..models import db, CheckInPrompt, ExerciseTemplate

logger = logging.getLogger(__name__)

DEFAULT_CHECK_IN_PROMPTS = [
    {"prompt": "What's one thing your partner did this week that made you feel appreciated?",
     "category": "appreciation"},
    {"prompt": "Is there a conversation or topic you'd like to discuss with your partner this week?",
     "category": "communication"},
    {"prompt": "What's one challenge you faced together this week, and how do you feel about how you handled it?",
     "category": "challenges"},
    {"prompt": "What's one goal you have for your relationship in the coming week?",
     "category": "goals"},
]

DEFAULT_EXERCISE_TEMPLATES = [
    {
        "title": "Active Listening Practice",
        "description": "Take turns sharing and reflecting back what you heard, without judgment.",
        "type": "active_listening",
        "difficulty_level": "beginner",
        "estimated_time_minutes": 15,
        "steps": [
            {"title": "Share", "promptText": "Describe something that has been on your mind this week.",
             "instructions": "Speak for yourself and keep it to a few sentences.", "userRole": "initiator",
             "expectedResponseType": "text", "timeEstimate": 5},
            {"title": "Reflect", "promptText": "Summarize what you heard your partner say.",
             "instructions": "Reflect feelings as well as facts.", "userRole": "partner",
             "expectedResponseType": "text", "timeEstimate": 5},
            {"title": "Appreciate", "promptText": "What did you appreciate about this exchange?",
             "userRole": "both", "expectedResponseType": "text", "timeEstimate": 5},
        ],
    },
    {
        "title": "Appreciation Sharing",
        "description": "Name the specific things you value about each other.",
        "type": "appreciation_sharing",
        "difficulty_level": "beginner",
        "estimated_time_minutes": 10,
        "steps": [
            {"title": "Recent moment", "promptText": "Share one recent moment when your partner made you feel cared for.",
             "userRole": "both", "expectedResponseType": "text", "timeEstimate": 5},
            {"title": "Quality", "promptText": "Name a quality in your partner you are grateful for.",
             "userRole": "both", "expectedResponseType": "text", "timeEstimate": 5},
        ],
    },
    {
        "title": "Expressing Needs",
        "description": "Practice naming a need and making a concrete request.",
        "type": "needs_expression",
        "difficulty_level": "intermediate",
        "estimated_time_minutes": 20,
        "steps": [
            {"title": "Name the feeling", "promptText": "How have you been feeling about our time together lately?",
             "userRole": "both", "expectedResponseType": "text", "timeEstimate": 5},
            {"title": "Name the need", "promptText": "What need sits underneath that feeling?",
             "expectedResponseType": "multiple_choice",
             "options": ["Connection", "Rest", "Support", "Space", "Recognition"],
             "userRole": "both", "timeEstimate": 5},
            {"title": "Make a request", "promptText": "What is one concrete thing your partner could do this week?",
             "userRole": "both", "expectedResponseType": "text", "timeEstimate": 10},
        ],
    },
]


def seed_check_in_prompts() -> int:
    if CheckInPrompt.query.count() > 0:
        logger.info("Skipping check-in prompts (already seeded)")
        return 0
    for item in DEFAULT_CHECK_IN_PROMPTS:
        db.session.add(CheckInPrompt(prompt=item["prompt"], category=item["category"], active=True))
    db.session.commit()
    logger.info(f"Seeded {len(DEFAULT_CHECK_IN_PROMPTS)} check-in prompts")
    return len(DEFAULT_CHECK_IN_PROMPTS)


def seed_exercise_templates() -> int:
    if ExerciseTemplate.query.count() > 0:
        logger.info("Skipping exercise templates (already seeded)")
        return 0
    for item in DEFAULT_EXERCISE_TEMPLATES:
        db.session.add(ExerciseTemplate(
            title=item["title"],
            description=item["description"],
            type=item["type"],
            total_steps=len(item["steps"]),
            difficulty_level=item["difficulty_level"],
            estimated_time_minutes=item["estimated_time_minutes"],
            is_active=True,
            steps=json.dumps(item["steps"]),
        ))
    db.session.commit()
    logger.info(f"Seeded {len(DEFAULT_EXERCISE_TEMPLATES)} exercise templates")
    return len(DEFAULT_EXERCISE_TEMPLATES)


def seed_all():
    return {
        "checkInPrompts": seed_check_in_prompts(),
        "exerciseTemplates": seed_exercise_templates(),
    }


@click.command('seed')
@with_appcontext
def seed_command():
    """Insert default check-in prompts and exercise templates."""
    db.create_all()
    counts = seed_all()
    click.echo(f"Seed complete: {counts['checkInPrompts']} prompts, {counts['exerciseTemplates']} templates")
