"""
Prompt Manager - Centralized prompt template management system

Holds every template sent to the generation backend and picks the
construction strategy for a user turn. All functions here are pure: they
format text from their inputs and never perform I/O.
"""

import json
from typing import Dict, List, Any, Optional
from enum import Enum
from app.core.query_classifier import QueryType
from app.core.logging_config import get_logger

logger = get_logger(__name__)

NOT_SPECIFIED = "not specified"
LOCATION_UNKNOWN = "unknown"
FOLLOW_UP_WINDOW = 4
FOLLOW_UP_SNIPPET_LENGTH = 200


class PromptType(Enum):
    """Prompt type enumeration"""

    SYSTEM = "system"
    DESTINATION_RECOMMENDATION = "destination_recommendation"
    PACKING = "packing"
    ATTRACTIONS = "attractions"
    FOLLOW_UP = "follow_up"
    DATA_AUGMENTED = "data_augmented"
    ERROR_RECOVERY = "error_recovery"
    LOCATION_RESOLUTION = "location_resolution"


class PromptManager:
    """Centralized prompt template manager"""

    def __init__(self):
        self.templates = self._initialize_templates()

    def _initialize_templates(self) -> Dict[str, str]:
        """Initialize all prompt templates"""
        return {
            PromptType.SYSTEM.value: self._get_system_template(),
            PromptType.DESTINATION_RECOMMENDATION.value: self._get_destination_recommendation_template(),
            PromptType.PACKING.value: self._get_packing_template(),
            PromptType.ATTRACTIONS.value: self._get_attractions_template(),
            PromptType.FOLLOW_UP.value: self._get_follow_up_template(),
            PromptType.DATA_AUGMENTED.value: self._get_data_augmented_template(),
            PromptType.ERROR_RECOVERY.value: self._get_error_recovery_template(),
            PromptType.LOCATION_RESOLUTION.value: self._get_location_resolution_template(),
        }

    def _get_system_template(self) -> str:
        return """You are an expert travel assistant with deep knowledge of global destinations, travel planning, and cultural insights. Your role is to provide helpful, accurate, and personalized travel advice.

CORE PRINCIPLES:
1. Be conversational and friendly, but concise
2. Ask clarifying questions when needed to provide better recommendations
3. If you don't know something with certainty, say so - don't make up information
4. Use external data (weather, country info) when provided to enhance your responses
5. Remember context from previous messages in the conversation
6. Prioritize practical, actionable advice

RESPONSE GUIDELINES:
- Keep responses between 2-4 paragraphs unless more detail is requested
- Use bullet points for lists (destinations, packing items, attractions)
- Include practical tips (best time to visit, budget considerations, safety)
- When suggesting destinations, explain WHY they match the user's interests
- For packing advice, consider the climate, activities, and duration

IMPORTANT: If real-time data (weather, events) is provided in the context, prioritize it over general knowledge. If no data is provided and the question requires current information, acknowledge the limitation."""

    def _get_destination_recommendation_template(self) -> str:
        """Step-by-step reasoning for destination recommendations"""
        return """Let's think through the best destination recommendation step by step:

USER QUERY: "{query}"

STEP 1 - ANALYZE USER PREFERENCES:
First, identify what the user is looking for:
- Budget level: {budget}
- Travel style: {travel_style}
- Season/timing: {season}
- Interests: {interests}
- Previously discussed: {previous_destinations}

STEP 2 - CONSIDER FACTORS:
Think about these factors:
- Climate and weather during their travel period
- Cultural events and peak/off-peak seasons
- Budget alignment with destination costs
- Safety and accessibility
- Unique experiences matching their interests

STEP 3 - GENERATE OPTIONS:
Come up with 2-3 destination options that match their criteria, considering variety in:
- Geographic diversity
- Experience type (adventure, relaxation, culture, etc.)
- Budget range

STEP 4 - PROVIDE RECOMMENDATION:
Present your recommendations with:
- Clear reasoning for each suggestion
- Specific highlights that match their interests
- Practical considerations (best time, budget estimate, tips)

Now provide your recommendations in a natural, conversational way:"""

    def _get_packing_template(self) -> str:
        return """Create a comprehensive packing list for a trip with these details:

TRIP DETAILS:
- Destination: {destination}
- Duration: {duration}
- Planned activities: {activities}
{weather_context}
PACKING CATEGORIES TO CONSIDER:
1. Clothing (weather-appropriate, layering, activity-specific)
2. Essentials (documents, money, electronics)
3. Toiletries and health (medications, sun protection, first aid)
4. Activity-specific gear
5. Optional but recommended items

APPROACH:
- Prioritize versatile items that can be mixed and matched
- Consider the local culture and dress codes
- Balance between packing light and being prepared
- Include quantities where relevant
- Flag items that can be purchased at destination vs must-bring

Provide the packing list in a clear, organized format with brief explanations for non-obvious items."""

    def _get_attractions_template(self) -> str:
        return """Recommend local attractions and activities for:

DESTINATION: {destination}
USER INTERESTS: {interests}
{country_context}
RECOMMENDATION CRITERIA:
1. Mix of popular must-sees and hidden gems
2. Variety of experience types (cultural, nature, food, adventure)
3. Consider different budget levels
4. Include practical info: typical duration, best time to visit, booking tips
5. Suggest a logical order or grouping (by area, by day, etc.)

STRUCTURE YOUR RESPONSE:
- Group attractions by type or area
- For each suggestion, explain why it matches their interests
- Include 1-2 insider tips
- Mention any seasonal considerations
- Suggest approximate time needed

Provide 5-7 well-chosen recommendations rather than an exhaustive list."""

    def _get_follow_up_template(self) -> str:
        return """CONVERSATION CONTEXT:
{recent_context}

NEW USER QUERY: "{query}"

INSTRUCTIONS:
- Reference relevant information from the conversation history
- Build upon previous recommendations naturally
- If the query is unrelated to previous context, it's okay to shift topics smoothly
- Maintain the same helpful, conversational tone
- If the user is asking for clarification or more details, focus your response specifically on that aspect

Respond to the user's query:"""

    def _get_data_augmented_template(self) -> str:
        """Blends fetched real-time data with model knowledge"""
        return """Answer the user's query using both your knowledge and the provided real-time data.

USER QUERY: "{query}"

REAL-TIME DATA:
{data_context}

INSTRUCTIONS:
- Blend the external data naturally into your response
- Use the data to provide specific, current information
- Supplement the data with your general knowledge about the destination
- If data is missing or limited, acknowledge it and provide general guidance
- Make your response conversational, not a data dump

Provide your response:"""

    def _get_error_recovery_template(self) -> str:
        return """The previous response was unclear or incomplete. Let's try again with more focus.

ORIGINAL USER QUESTION: "{query}"

PREVIOUS RESPONSE:
{previous_response}

PROBLEMS FOUND: {issues}

Please provide a clear, focused answer that:
1. Directly addresses the user's question
2. Gives specific, actionable information
3. Stays on topic
4. Admits uncertainty if you don't have reliable information

Provide your improved response:"""

    def _get_location_resolution_template(self) -> str:
        return """Identify the travel location (city or country) this message is about.

MESSAGE: "{query}"
{recent_destinations}
Reply with ONLY the location name, for example: Paris
If no specific location is mentioned or implied, reply with exactly: unknown"""

    def get_prompt(self, prompt_type: PromptType, **kwargs) -> str:
        """Format a template with the given values"""
        template = self.templates.get(prompt_type.value)
        if template is None:
            raise ValueError(f"Unknown prompt type: {prompt_type}")
        try:
            return template.format(**kwargs)
        except KeyError as e:
            logger.error(f"Missing parameter {e} for prompt {prompt_type.value}")
            raise

    def get_system_prompt(self) -> str:
        return self.templates[PromptType.SYSTEM.value]

    def get_available_prompts(self) -> List[str]:
        return list(self.templates.keys())

    # ----- strategies -----

    def destination_recommendation_prompt(self, query: str, preferences: Dict[str, Any]) -> str:
        budget = preferences.get("budget")
        if not budget and preferences.get("budgetMentioned"):
            budget = "mentioned, amount unknown"

        return self.get_prompt(
            PromptType.DESTINATION_RECOMMENDATION,
            query=query,
            budget=budget or NOT_SPECIFIED,
            travel_style=preferences.get("travelStyle") or _join(preferences.get("travelStyles")) or NOT_SPECIFIED,
            season=preferences.get("season") or NOT_SPECIFIED,
            interests=_join(preferences.get("interests")) or "to be determined from query",
            previous_destinations=_join(preferences.get("destinations")) or "none",
        )

    def packing_prompt(self, preferences: Dict[str, Any], weather: Optional[Dict[str, Any]] = None) -> str:
        weather_context = ""
        if weather:
            weather_context = (
                "\nCURRENT WEATHER DATA:\n"
                f"- Temperature: {weather.get('temperature')}°C\n"
                f"- Conditions: {weather.get('condition')}\n"
                f"- Humidity: {weather.get('humidity')}%\n"
                f"- Expected weather: {_describe_forecast(weather.get('forecast'))}\n"
            )

        return self.get_prompt(
            PromptType.PACKING,
            destination=_destination_of(preferences),
            duration=preferences.get("duration") or NOT_SPECIFIED,
            activities=_join(preferences.get("activities")) or _join(preferences.get("interests")) or NOT_SPECIFIED,
            weather_context=weather_context,
        )

    def attractions_prompt(self, preferences: Dict[str, Any], country: Optional[Dict[str, Any]] = None) -> str:
        country_context = ""
        if country:
            country_context = (
                "\nDESTINATION CONTEXT:\n"
                f"- Capital: {country.get('capital') or 'unknown'}\n"
                f"- Languages: {_join(country.get('languages')) or 'unknown'}\n"
                f"- Currency: {country.get('currency') or 'unknown'}\n"
                f"- Region: {country.get('region') or 'unknown'}\n"
                f"- Popular for: {country.get('highlights') or 'various attractions'}\n"
            )

        return self.get_prompt(
            PromptType.ATTRACTIONS,
            destination=_destination_of(preferences),
            interests=_join(preferences.get("interests")) or NOT_SPECIFIED,
            country_context=country_context,
        )

    def follow_up_prompt(self, conversation_history: List[Dict[str, str]], query: str) -> str:
        recent_context = "\n".join(
            f"{msg['role']}: {msg['content'][:FOLLOW_UP_SNIPPET_LENGTH]}..."
            for msg in conversation_history[-FOLLOW_UP_WINDOW:]
        )
        return self.get_prompt(PromptType.FOLLOW_UP, recent_context=recent_context, query=query)

    def data_augmented_prompt(self, query: str, external_data: Dict[str, Any]) -> str:
        data_context = "\n\n".join(
            f"{source.upper()}: {json.dumps(data, indent=2, default=str, ensure_ascii=False)}"
            for source, data in external_data.items()
        )
        return self.get_prompt(PromptType.DATA_AUGMENTED, query=query, data_context=data_context)

    def error_recovery_prompt(self, query: str, previous_response: str, issues: List[str]) -> str:
        return self.get_prompt(
            PromptType.ERROR_RECOVERY,
            query=query,
            previous_response=previous_response or "(no response)",
            issues="; ".join(issues) or "Too vague or off-topic",
        )

    def location_resolution_prompt(self, query: str, known_destinations: Optional[List[str]] = None) -> str:
        recent = ""
        if known_destinations:
            recent = f"Previously mentioned places: {', '.join(known_destinations[-3:])}\n"
        return self.get_prompt(PromptType.LOCATION_RESOLUTION, query=query, recent_destinations=recent)

    def build_prompt(
        self,
        query: str,
        query_type: QueryType,
        conversation_history: Optional[List[Dict[str, str]]] = None,
        external_data: Optional[Dict[str, Any]] = None,
        user_preferences: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Select a strategy and build the user-turn prompt.

        Prior turns win over the intent tag: a conversation with history gets
        the follow-up strategy, or the data-augmented one when data was
        fetched. A first turn is routed by tag; tags without a dedicated
        strategy use the data-augmented prompt if data exists and the raw
        query otherwise. The system prompt is never part of the result.
        """
        conversation_history = conversation_history or []
        external_data = external_data or {}
        user_preferences = user_preferences or {}

        if conversation_history:
            if external_data:
                return self.data_augmented_prompt(query, external_data)
            return self.follow_up_prompt(conversation_history, query)

        if query_type == QueryType.DESTINATION_RECOMMENDATION:
            return self.destination_recommendation_prompt(query, user_preferences)
        if query_type == QueryType.PACKING:
            return self.packing_prompt(user_preferences, external_data.get("weather"))
        if query_type == QueryType.ATTRACTIONS:
            return self.attractions_prompt(user_preferences, external_data.get("country"))

        if external_data:
            return self.data_augmented_prompt(query, external_data)
        return query


def _join(value: Any) -> str:
    if not value:
        return ""
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


def _destination_of(preferences: Dict[str, Any]) -> str:
    destination = preferences.get("destination")
    if destination:
        return str(destination)
    destinations = preferences.get("destinations") or []
    return destinations[-1] if destinations else NOT_SPECIFIED


def _describe_forecast(forecast: Optional[List[Dict[str, Any]]]) -> str:
    if not forecast:
        return "similar conditions"
    return "; ".join(
        f"{item.get('time')}: {item.get('temperature')}°C, {item.get('condition')}"
        for item in forecast[:4]
    )


# Create global instance
prompt_manager = PromptManager()
