"""
Service for calling the OpenAI and Anthropic HTTP APIs.

Every public method degrades gracefully: a missing key, a timeout or an HTTP
error is logged and the caller receives a fixed fallback (text operations) or
an ``{"error": ...}`` dict (image operations).
"""
import copy
import json
import logging
from typing import List, Dict, Any, Optional

import requests
from flask import current_app

logger = logging.getLogger(__name__)

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
OPENAI_IMAGES_URL = "https://api.openai.com/v1/images/generations"
OPENAI_IMAGE_EDITS_URL = "https://api.openai.com/v1/images/edits"
ANTHROPIC_MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"

DEFAULT_DELIVERY_TIPS = [
    "Choose a calm moment for this conversation",
    "Use a gentle tone of voice",
    "Be open to hearing their perspective",
]

TRANSFORM_FALLBACK = {
    "transformedMessage": ("I'm feeling some emotions about our situation and would like to talk about it "
                           "in a constructive way. Can we find some time to discuss this together?"),
    "communicationElements": ["Expressing feelings", "Requesting conversation"],
    "deliveryTips": DEFAULT_DELIVERY_TIPS,
}

ANTHROPIC_DELIVERY_TIPS = [
    "Speak calmly and maintain open body language",
    "Allow your partner time to respond without interruption",
    "Be receptive to their perspective",
]

CONFLICT_ANALYSIS_FALLBACK = {
    "insights": "Unable to analyze this conflict at the moment.",
    "strategies": ["Consider taking a short break and returning to the conversation later."],
}

CONFLICT_ANALYSIS_NO_KEY = {
    "insights": ("API key for advanced conflict analysis is not available. Basic analysis suggests "
                 "focusing on communication and understanding."),
    "strategies": [
        "Take turns expressing your perspectives without interruption",
        "Acknowledge each other's feelings before proposing solutions",
        "Focus on the issue at hand rather than bringing up past conflicts",
    ],
}

CONFLICT_TRANSFORM_FALLBACK = {
    "transformedMessage": ("I'd like us to work through this together. Here is how I'm seeing things, "
                           "and I want to understand your view as well."),
    "emotionalTone": "neutral",
    "suggestions": ["Stay curious about your partner's perspective", "Focus on one issue at a time"],
}

JOURNAL_ANALYSIS_FALLBACK = {
    "aiSummary": "",
    "aiRefinedContent": "",
    "emotions": [],
    "emotionalInsight": "We couldn't analyze this entry right now. Your reflection is still saved.",
    "emotionalScore": 5,
    "suggestedResponse": "",
    "suggestedBoundary": "",
    "reflectionPrompt": "What would help you feel more understood in this situation?",
    "patternCategory": "general",
}

JOURNAL_RESPONSE_FALLBACK = {
    "response": "Thank you for sharing this with me. I want to understand how you feel, can we talk about it?",
}

EMOTION_PATTERNS_NO_DATA = {
    "dominantEmotions": [{
        "emotion": "neutral",
        "frequency": 5,
        "intensity": 5,
        "description": "Not enough data to analyze emotional patterns yet.",
    }],
    "emotionTrends": {
        "overall": "stable",
        "description": "Start expressing emotions to see trends.",
        "recentShift": None,
    },
    "patterns": [],
    "relationshipInsights": {
        "communicationStyle": "Not enough data yet",
        "emotionalDynamics": "Continue using the app to generate insights",
        "growthAreas": ["Emotional awareness", "Communication"],
        "strengths": ["Desire to improve"],
    },
    "personalizedRecommendations": [
        "Log your emotions regularly",
        "Journal about relationship experiences",
        "Use the emotion transformation tools",
    ],
}

THERAPY_SESSION_FALLBACK = {
    "transcript": (
        "Therapist: Thank you both for making time for this session. Looking at what you've shared "
        "recently, it sounds like you both care about feeling heard.\n"
        "Therapist: Before our next session, try setting aside ten quiet minutes where one of you "
        "speaks and the other only reflects back what they heard. Then switch."
    ),
    "summary": {
        "emotionalPatterns": ["Both partners are looking for more understanding"],
        "coreIssues": ["Making room for each other's perspective"],
        "recommendations": [
            "Schedule a regular check-in conversation",
            "Reflect back what you heard before responding",
            "Share one appreciation with each other every day",
        ],
    },
}


class AIServiceError(Exception):
    """Raised internally when an upstream AI call cannot produce a usable result."""


class AIService:
    """Client for the AI-backed operations used by the REST handlers."""

    def __init__(self, openai_api_key: Optional[str] = None, anthropic_api_key: Optional[str] = None,
                 openai_model: str = "gpt-4o", image_model: str = "dall-e-3",
                 anthropic_model: str = "claude-sonnet-4-5", timeout: int = 60):
        """Initialize the AI service.

        Args:
            openai_api_key: Key for the OpenAI API, or None when unavailable.
            anthropic_api_key: Key for the Anthropic API, or None when unavailable.
            openai_model: Chat model used for text operations.
            image_model: Image model used for avatars.
            anthropic_model: Claude model used for the Anthropic transform.
            timeout: Request timeout in seconds.
        """
        self.openai_api_key = openai_api_key
        self.anthropic_api_key = anthropic_api_key
        self.openai_model = openai_model
        self.image_model = image_model
        self.anthropic_model = anthropic_model
        self.timeout = timeout

        if not self.openai_api_key:
            logger.warning("OPENAI_API_KEY not set. AI text operations will return fallbacks.")

    @classmethod
    def from_config(cls, config) -> 'AIService':
        return cls(
            openai_api_key=config.get('OPENAI_API_KEY'),
            anthropic_api_key=config.get('ANTHROPIC_API_KEY'),
            openai_model=config.get('OPENAI_MODEL', 'gpt-4o'),
            image_model=config.get('OPENAI_IMAGE_MODEL', 'dall-e-3'),
            anthropic_model=config.get('ANTHROPIC_MODEL', 'claude-sonnet-4-5'),
            timeout=config.get('AI_REQUEST_TIMEOUT', 60),
        )

    # --- Transport ---

    def _openai_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.openai_api_key}",
            "Content-Type": "application/json",
        }

    def _post(self, url: str, headers: Dict[str, str], payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = requests.post(url, headers=headers, json=payload, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.Timeout as e:
            logger.error(f"Request to {url} timed out.")
            raise AIServiceError("timeout") from e
        except requests.exceptions.RequestException as e:
            status = e.response.status_code if e.response is not None else 'N/A'
            logger.error(f"Error calling {url} (Status: {status}): {e}")
            raise AIServiceError(str(e)) from e
        except ValueError as e:
            logger.error(f"Non-JSON response from {url}")
            raise AIServiceError("invalid response body") from e

    def _chat_json(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        """Run a chat completion that must return a JSON object."""
        if not self.openai_api_key:
            raise AIServiceError("OPENAI_API_KEY is not configured")

        payload = {
            "model": self.openai_model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "response_format": {"type": "json_object"},
        }
        result = self._post(OPENAI_CHAT_URL, self._openai_headers(), payload)
        try:
            content = result["choices"][0]["message"]["content"] or "{}"
            parsed = json.loads(content)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error(f"Unexpected chat completion format: {str(result)[:200]}")
            raise AIServiceError("unexpected completion format") from e
        if not isinstance(parsed, dict):
            raise AIServiceError("completion is not a JSON object")
        return parsed

    def _anthropic_text(self, prompt: str, system: Optional[str] = None, max_tokens: int = 1024) -> str:
        if not self.anthropic_api_key:
            raise AIServiceError("ANTHROPIC_API_KEY is not configured")

        headers = {
            "x-api-key": self.anthropic_api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        payload: Dict[str, Any] = {
            "model": self.anthropic_model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            payload["system"] = system

        result = self._post(ANTHROPIC_MESSAGES_URL, headers, payload)
        for block in result.get("content") or []:
            if block.get("type") == "text" and block.get("text"):
                return block["text"]
        raise AIServiceError("Unexpected response format from Anthropic API")

    # --- Emotional messages ---

    def transform_emotional_message(self, emotion: str, raw_message: str,
                                    context: Optional[str] = None) -> Dict[str, Any]:
        """Rewrite a raw emotional statement into empathetic communication.

        Args:
            emotion: The emotion the user reported.
            raw_message: The statement as written.
            context: Optional description of the situation.

        Returns:
            Dict with transformedMessage, communicationElements and deliveryTips.
        """
        system_prompt = (
            "You are an expert in relationship communication and emotional intelligence.\n"
            "Your task is to help transform raw emotional expressions into empathetic, constructive "
            "communication.\n"
            "Focus on using \"I\" statements, non-blaming language, expressing needs clearly, and "
            "suggesting solutions.\n\n"
            f"Emotion: The person is feeling {emotion}.\n"
            f"Raw Message: {raw_message}\n"
            f"{'Context: ' + context if context else ''}\n\n"
            "Respond with a JSON object containing:\n"
            "1. \"transformedMessage\": a transformed version of the message that is empathetic and constructive\n"
            "2. \"communicationElements\": an array of communication techniques used in the transformation\n"
            "3. \"deliveryTips\": an array of 3 practical tips for delivering this message effectively"
        )
        try:
            result = self._chat_json(system_prompt,
                                     "Please transform this emotional message into empathetic communication.")
        except AIServiceError:
            return dict(TRANSFORM_FALLBACK)

        return {
            "transformedMessage": result.get("transformedMessage") or (
                "I understand you're feeling strong emotions. Let's talk about this together when we're both ready."),
            "communicationElements": result.get("communicationElements") or ["Empathetic listening",
                                                                             "Open communication"],
            "deliveryTips": result.get("deliveryTips") or DEFAULT_DELIVERY_TIPS,
        }

    def transform_with_anthropic(self, raw_message: str, emotions: List[str]) -> Dict[str, Any]:
        """Claude variant of the transform; falls back to the original text."""
        prompt = (
            "Transform the following message into a more empathetic expression that maintains the core "
            "feelings but communicates them in a healthier way.\n\n"
            f"Original message: \"{raw_message}\"\n"
            f"Emotions: {', '.join(emotions)}\n\n"
            "Please rewrite this message to:\n"
            "1. Express the same core feelings\n"
            "2. Use \"I\" statements\n"
            "3. Avoid blame\n"
            "4. Be specific about needs\n"
            "5. Express appreciation where possible\n"
            "6. Maintain authenticity"
        )
        try:
            transformed = self._anthropic_text(prompt)
        except AIServiceError:
            logger.warning("Anthropic transform unavailable, returning the original text")
            transformed = raw_message

        return {
            "transformedMessage": transformed,
            "communicationElements": {
                "iStatements": True,
                "specificRequests": True,
                "empathyIndicators": True,
                "blameFree": True,
            },
            "deliveryTips": list(ANTHROPIC_DELIVERY_TIPS),
        }

    def summarize_response(self, original_message: str, response: str) -> str:
        """One-line summary of a partner's reply to a shared message."""
        system_prompt = (
            "You summarize replies between romantic partners. Given the original message and the "
            "partner's response, return a JSON object with a single key \"summary\" holding one "
            "short, neutral sentence that captures the response's core feeling and request."
        )
        user_prompt = f"Original message: {original_message}\n\nResponse: {response}"
        try:
            result = self._chat_json(system_prompt, user_prompt)
        except AIServiceError:
            return "Your partner responded to your message."
        return result.get("summary") or "Your partner responded to your message."

    # --- Conflicts ---

    def transform_conflict_message(self, message: str, topic: Optional[str] = None) -> Dict[str, Any]:
        system_prompt = (
            "You are a couples mediator. Rewrite the message a partner wants to post in a conflict "
            "discussion so it is calm, specific and free of blame while keeping its meaning.\n"
            f"{'Conflict topic: ' + topic if topic else ''}\n"
            "Respond with a JSON object with keys \"transformedMessage\" (string), \"emotionalTone\" "
            "(one word) and \"suggestions\" (array of short strings)."
        )
        try:
            result = self._chat_json(system_prompt, message)
        except AIServiceError:
            return dict(CONFLICT_TRANSFORM_FALLBACK)
        return {
            "transformedMessage": result.get("transformedMessage") or CONFLICT_TRANSFORM_FALLBACK["transformedMessage"],
            "emotionalTone": result.get("emotionalTone") or "neutral",
            "suggestions": result.get("suggestions") or [],
        }

    def analyze_conflict(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        """Insights and resolution strategies for a conflict thread.

        Args:
            messages: Items with ``author`` and ``text`` keys, oldest first.

        Returns:
            Dict with ``insights`` (str) and ``strategies`` (list of str).
        """
        if not self.anthropic_api_key:
            logger.warning("Anthropic API key not available. Using default conflict analysis.")
            return {"insights": CONFLICT_ANALYSIS_NO_KEY["insights"],
                    "strategies": list(CONFLICT_ANALYSIS_NO_KEY["strategies"])}

        conversation = "\n\n".join(f"{m.get('author')}: {m.get('text')}" for m in messages)
        prompt = (
            "Analyze this conflict conversation between partners and provide relationship insights and "
            "resolution strategies:\n\n"
            f"Conversation:\n{conversation}\n\n"
            "Please provide:\n"
            "1. Insights about the underlying needs, emotions, and patterns in this conflict\n"
            "2. Three specific strategies these partners could use to resolve this conflict constructively\n\n"
            "Format your response as a JSON object with \"insights\" as a string and \"strategies\" as an "
            "array of strings."
        )
        system = ("You're a relationship expert specializing in conflict resolution. Provide insights and "
                  "strategies in JSON format with keys: 'insights' and 'strategies' (array).")
        try:
            text = self._anthropic_text(prompt, system=system, max_tokens=1500)
            result = json.loads(text)
            return {"insights": result["insights"], "strategies": list(result["strategies"])}
        except (AIServiceError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error analyzing conflict: {e}")
            return {"insights": CONFLICT_ANALYSIS_FALLBACK["insights"],
                    "strategies": list(CONFLICT_ANALYSIS_FALLBACK["strategies"])}

    # --- Journal ---

    def analyze_journal_entry(self, content: str, title: str,
                              previous_entries: Optional[List[Dict[str, str]]] = None) -> Dict[str, Any]:
        history = ""
        if previous_entries:
            history = "\n\nRecent entries for context:\n" + "\n".join(
                f"- {e.get('date', '')} {e.get('title', '')}: {e.get('content', '')[:300]}"
                for e in previous_entries
            )
        system_prompt = (
            "You are a compassionate relationship coach reading a private journal entry. Respond with a "
            "JSON object with keys: aiSummary (string), aiRefinedContent (string), emotions (array of "
            "strings), emotionalInsight (string), emotionalScore (integer 1-10), suggestedResponse "
            "(string), suggestedBoundary (string), reflectionPrompt (string), patternCategory (string)."
        )
        try:
            result = self._chat_json(system_prompt, f"Title: {title}\n\n{content}{history}")
        except AIServiceError:
            return dict(JOURNAL_ANALYSIS_FALLBACK)

        analysis = dict(JOURNAL_ANALYSIS_FALLBACK)
        for key in analysis:
            if result.get(key) not in (None, ""):
                analysis[key] = result[key]
        return analysis

    def generate_journal_response(self, journal_content: str, prompt: str) -> Dict[str, Any]:
        system_prompt = (
            "Help a partner write a caring reply to a journal entry their partner shared with them. "
            f"The reply should be {prompt}. Respond with a JSON object with a single key \"response\"."
        )
        try:
            result = self._chat_json(system_prompt, journal_content)
        except AIServiceError:
            return dict(JOURNAL_RESPONSE_FALLBACK)
        return {"response": result.get("response") or JOURNAL_RESPONSE_FALLBACK["response"]}

    # --- Emotional patterns ---

    def analyze_emotion_patterns(self, journal_entries: List[Dict[str, Any]],
                                 expressions: List[Dict[str, Any]],
                                 partner_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Describe recurring emotional patterns across journal entries and logged expressions.

        Args:
            journal_entries: Recent entries with title, content, emotions, emotionalScore and date.
            expressions: Logged expressions with emotion, context, intensity and date.
            partner_data: Optional partner summary with dominantEmotions and recentExpressions.

        Returns:
            Dict with dominantEmotions, emotionTrends, patterns, relationshipInsights and
            personalizedRecommendations.
        """
        system_prompt = (
            "You are a relationship psychologist looking for emotional patterns in one partner's journal "
            "entries and emotion log. Respond with a JSON object with keys: dominantEmotions (array of "
            "objects with emotion, frequency 1-10, intensity 1-10 and description), emotionTrends (object "
            "with overall, description and recentShift), patterns (array of objects with trigger, response "
            "and suggestion), relationshipInsights (object with communicationStyle, emotionalDynamics, "
            "growthAreas array and strengths array) and personalizedRecommendations (array of strings)."
        )
        user_prompt = json.dumps({
            "journalEntries": journal_entries,
            "emotionalExpressions": expressions,
            "partner": partner_data,
        }, default=str)
        fallback = self._basic_emotion_patterns(journal_entries, expressions)
        try:
            result = self._chat_json(system_prompt, user_prompt)
        except AIServiceError:
            return fallback

        for key, value in fallback.items():
            if not result.get(key):
                result[key] = value
        return {key: result[key] for key in fallback}

    @staticmethod
    def _basic_emotion_patterns(journal_entries: List[Dict[str, Any]],
                                expressions: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Frequency-only summary used when the model is unavailable."""
        counts: Dict[str, int] = {}
        intensities: Dict[str, List[int]] = {}
        for entry in journal_entries:
            for emotion in entry.get("emotions") or []:
                counts[emotion] = counts.get(emotion, 0) + 1
        for expression in expressions:
            emotion = expression.get("emotion") or "neutral"
            counts[emotion] = counts.get(emotion, 0) + 1
            intensities.setdefault(emotion, []).append(expression.get("intensity") or 5)

        result = copy.deepcopy(EMOTION_PATTERNS_NO_DATA)
        if not counts:
            return result

        top = sorted(counts.items(), key=lambda item: item[1], reverse=True)[:3]
        averages = {emotion: round(sum(values) / len(values)) for emotion, values in intensities.items()}
        result["dominantEmotions"] = [{
            "emotion": emotion,
            "frequency": min(count, 10),
            "intensity": averages.get(emotion, 5),
            "description": f"You expressed {emotion} {count} time{'s' if count != 1 else ''} recently.",
        } for emotion, count in top]
        result["emotionTrends"]["description"] = "Detailed trend analysis is not available right now."
        return result

    # --- Therapy sessions ---

    def generate_therapy_session(self, user_entries: List[Dict[str, Any]], partner_entries: List[Dict[str, Any]],
                                 conflict_threads: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Write a short couples-therapy session from recent journals and conflict discussions.

        Returns:
            Dict with ``transcript`` (str) and ``summary`` holding emotionalPatterns, coreIssues and
            recommendations (lists of str).
        """
        system_prompt = (
            "You are a warm, experienced couples therapist. Using one partner's recent journal entries, "
            "the entries their partner chose to share and their recent conflict discussions, write a short "
            "session transcript in which the therapist speaks to the couple, naming what you notice and "
            "offering one exercise. Never quote private entries directly. Respond with a JSON object with "
            "keys: transcript (string) and summary (object with emotionalPatterns, coreIssues and "
            "recommendations, each an array of strings)."
        )
        user_prompt = json.dumps({
            "userEntries": user_entries,
            "partnerSharedEntries": partner_entries,
            "conflictThreads": conflict_threads,
        }, default=str)
        try:
            result = self._chat_json(system_prompt, user_prompt)
        except AIServiceError:
            return copy.deepcopy(THERAPY_SESSION_FALLBACK)

        fallback_summary = THERAPY_SESSION_FALLBACK["summary"]
        summary = result.get("summary") if isinstance(result.get("summary"), dict) else {}
        return {
            "transcript": result.get("transcript") or THERAPY_SESSION_FALLBACK["transcript"],
            "summary": {key: list(summary.get(key) or fallback_summary[key]) for key in fallback_summary},
        }

    # --- Avatars ---

    def generate_avatar(self, prompt: str) -> Dict[str, Any]:
        """Generate an avatar image URL from a text prompt."""
        if not self.openai_api_key:
            return {"error": "Avatar generation is not available"}

        payload = {
            "model": self.image_model,
            "prompt": f"A friendly profile avatar, centered portrait, soft colors. {prompt}",
            "n": 1,
            "size": "1024x1024",
        }
        try:
            result = self._post(OPENAI_IMAGES_URL, self._openai_headers(), payload)
            return {"url": result["data"][0]["url"]}
        except AIServiceError:
            return {"error": "Failed to generate avatar"}
        except (KeyError, IndexError, TypeError):
            logger.error("Unexpected images API response format")
            return {"error": "Failed to generate avatar"}

    def restyle_avatar(self, image_path: str, style: Optional[str] = None) -> Dict[str, Any]:
        """Restyle an uploaded picture into an illustrated avatar."""
        if not self.openai_api_key:
            return {"error": "Avatar transformation is not available"}

        prompt = (f"Transform this photo into an illustrated profile avatar in a {style or 'warm cartoon'} "
                  "style, keeping the person's recognizable features.")
        try:
            with open(image_path, 'rb') as image_file:
                response = requests.post(
                    OPENAI_IMAGE_EDITS_URL,
                    headers={"Authorization": f"Bearer {self.openai_api_key}"},
                    data={"model": "gpt-image-1", "prompt": prompt, "n": 1, "size": "1024x1024"},
                    files={"image": image_file},
                    timeout=self.timeout,
                )
            response.raise_for_status()
            data = response.json()["data"][0]
        except OSError as e:
            logger.error(f"Cannot read avatar image {image_path}: {e}")
            return {"error": "Avatar image not found"}
        except requests.exceptions.RequestException as e:
            logger.error(f"Error restyling avatar: {e}")
            return {"error": "Failed to transform avatar"}
        except (KeyError, IndexError, TypeError, ValueError):
            logger.error("Unexpected image edit response format")
            return {"error": "Failed to transform avatar"}

        if data.get("url"):
            return {"url": data["url"]}
        if data.get("b64_json"):
            return {"b64_json": data["b64_json"]}
        return {"error": "Failed to transform avatar"}


def init_ai_service(app) -> AIService:
    service = AIService.from_config(app.config)
    app.extensions['ai_service'] = service
    return service


def get_ai_service() -> AIService:
    """Return the AI service bound to the current app."""
    service = current_app.extensions.get('ai_service')
    if service is None:
        service = init_ai_service(current_app)
    return service
