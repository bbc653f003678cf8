"""
Guided communication exercise models.

An exercise is instantiated from a template for one partnership. Partners take
turns answering steps; ``current_user_id`` holds the turn.
"""
import json
from typing import Dict, Any, List, Optional

from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, ForeignKey, JSON
from sqlalchemy.orm import relationship

from . import db, utcnow, isoformat

EXERCISE_TYPES = ('active_listening', 'emotion_awareness', 'needs_expression', 'conflict_resolution',
                  'appreciation_sharing', 'future_planning', 'empathy_building')
EXERCISE_STATUSES = ('not_started', 'in_progress', 'completed', 'partner_turn')
DIFFICULTY_LEVELS = ('beginner', 'intermediate', 'advanced')
STEP_ROLES = ('initiator', 'partner', 'both')


class ExerciseTemplate(db.Model):
    __tablename__ = 'exercise_templates'

    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    type = Column(String(32), nullable=False)
    total_steps = Column(Integer, nullable=False)
    difficulty_level = Column(String(16), nullable=False, default='beginner')
    estimated_time_minutes = Column(Integer, nullable=False, default=15)
    is_active = Column(Boolean, nullable=False, default=True)
    # JSON list of step definitions
    steps = Column(Text, nullable=False, default='[]')
    template_data = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def step_definitions(self) -> List[Dict[str, Any]]:
        try:
            steps = json.loads(self.steps or '[]')
        except ValueError:
            return []
        return steps if isinstance(steps, list) else []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "totalSteps": self.total_steps,
            "difficultyLevel": self.difficulty_level,
            "estimatedTimeMinutes": self.estimated_time_minutes,
            "isActive": bool(self.is_active),
            "steps": self.step_definitions(),
            "templateData": self.template_data,
            "createdAt": isoformat(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<ExerciseTemplate {self.title}>"


class CommunicationExercise(db.Model):
    __tablename__ = 'communication_exercises'

    id = Column(Integer, primary_key=True)
    partnership_id = Column(Integer, ForeignKey('partnerships.id'), nullable=False)
    initiator_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    partner_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    template_id = Column(Integer, ForeignKey('exercise_templates.id'), nullable=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    type = Column(String(32), nullable=False)
    status = Column(String(16), nullable=False, default='not_started')
    current_step_number = Column(Integer, nullable=False, default=1)
    total_steps = Column(Integer, nullable=False, default=1)
    current_user_id = Column(Integer, ForeignKey('users.id'), nullable=True)
    scheduled_for = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    last_updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    steps = relationship('ExerciseStep', backref='exercise', lazy='dynamic', cascade='all, delete-orphan',
                         order_by='ExerciseStep.step_number')
    responses = relationship('ExerciseResponse', backref='exercise', lazy='dynamic',
                             cascade='all, delete-orphan')

    def includes(self, user_id: int) -> bool:
        return user_id in (self.initiator_id, self.partner_id)

    def other_participant(self, user_id: int) -> int:
        return self.partner_id if self.initiator_id == user_id else self.initiator_id

    def user_for_role(self, role: str, current: Optional[int] = None) -> int:
        """Resolve a step role to the user who should act on it.

        ``both`` hands the turn to whoever is not ``current``.
        """
        if role == 'initiator':
            return self.initiator_id
        if role == 'partner':
            return self.partner_id
        if current is None:
            return self.initiator_id
        return self.other_participant(current)

    def step(self, number: int) -> Optional['ExerciseStep']:
        return self.steps.filter_by(step_number=number).first()

    def complete(self) -> None:
        self.status = 'completed'
        self.completed_at = utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "partnershipId": self.partnership_id,
            "initiatorId": self.initiator_id,
            "partnerId": self.partner_id,
            "templateId": self.template_id,
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "status": self.status,
            "currentStepNumber": self.current_step_number,
            "totalSteps": self.total_steps,
            "currentUserId": self.current_user_id,
            "scheduledFor": isoformat(self.scheduled_for),
            "completedAt": isoformat(self.completed_at),
            "createdAt": isoformat(self.created_at),
            "lastUpdatedAt": isoformat(self.last_updated_at),
        }

    def __repr__(self) -> str:
        return f"<CommunicationExercise {self.id} step={self.current_step_number} {self.status}>"


class ExerciseStep(db.Model):
    __tablename__ = 'exercise_steps'

    id = Column(Integer, primary_key=True)
    exercise_id = Column(Integer, ForeignKey('communication_exercises.id'), nullable=False, index=True)
    step_number = Column(Integer, nullable=False)
    title = Column(String(200), nullable=False)
    prompt_text = Column(Text, nullable=False)
    instructions = Column(Text, nullable=True)
    expected_response_type = Column(String(32), nullable=False, default='text')
    options = Column(JSON, nullable=True)
    required_for_completion = Column(Boolean, nullable=False, default=True)
    user_role = Column(String(16), nullable=False, default='both')
    time_estimate_minutes = Column(Integer, nullable=True)

    @classmethod
    def from_definition(cls, exercise_id: int, number: int, definition: Dict[str, Any]) -> 'ExerciseStep':
        """Build a step row from one entry of a template's step list."""
        role = definition.get('userRole') or 'both'
        return cls(
            exercise_id=exercise_id,
            step_number=number,
            title=definition.get('title') or f"Step {number}",
            prompt_text=definition.get('promptText') or '',
            instructions=definition.get('instructions'),
            expected_response_type=definition.get('expectedResponseType') or 'text',
            options=definition.get('options'),
            required_for_completion=definition.get('requiredForCompletion', True),
            user_role=role if role in STEP_ROLES else 'both',
            time_estimate_minutes=definition.get('timeEstimate'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "exerciseId": self.exercise_id,
            "stepNumber": self.step_number,
            "title": self.title,
            "promptText": self.prompt_text,
            "instructions": self.instructions,
            "expectedResponseType": self.expected_response_type,
            "options": self.options,
            "requiredForCompletion": bool(self.required_for_completion),
            "userRole": self.user_role,
            "timeEstimate": self.time_estimate_minutes,
        }


class ExerciseResponse(db.Model):
    __tablename__ = 'exercise_responses'

    id = Column(Integer, primary_key=True)
    exercise_id = Column(Integer, ForeignKey('communication_exercises.id'), nullable=False, index=True)
    step_id = Column(Integer, ForeignKey('exercise_steps.id'), nullable=False)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    response_text = Column(Text, nullable=True)
    response_option = Column(String(200), nullable=True)
    audio_url = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "exerciseId": self.exercise_id,
            "stepId": self.step_id,
            "userId": self.user_id,
            "responseText": self.response_text,
            "responseOption": self.response_option,
            "audioUrl": self.audio_url,
            "createdAt": isoformat(self.created_at),
        }
