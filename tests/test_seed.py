"""
Reference data seeding.
"""
from backend.coupleclarity.models import CheckInPrompt, ExerciseTemplate
from backend.coupleclarity.models.exercise import STEP_ROLES
from backend.coupleclarity.utils.seed import seed_all, DEFAULT_CHECK_IN_PROMPTS, DEFAULT_EXERCISE_TEMPLATES


def test_seed_is_idempotent(app):
    counts = seed_all()
    assert counts == {"checkInPrompts": len(DEFAULT_CHECK_IN_PROMPTS),
                      "exerciseTemplates": len(DEFAULT_EXERCISE_TEMPLATES)}
    assert seed_all() == {"checkInPrompts": 0, "exerciseTemplates": 0}
    assert CheckInPrompt.query.count() == len(DEFAULT_CHECK_IN_PROMPTS)


def test_seeded_templates_have_valid_steps(app):
    seed_all()
    for template in ExerciseTemplate.query.all():
        steps = template.step_definitions()
        assert template.total_steps == len(steps)
        assert all(s["userRole"] in STEP_ROLES for s in steps)


def test_seed_cli_command(app):
    result = app.test_cli_runner().invoke(args=["seed"])
    assert result.exit_code == 0
    assert "Seed complete" in result.output
    assert ExerciseTemplate.query.count() == len(DEFAULT_EXERCISE_TEMPLATES)
