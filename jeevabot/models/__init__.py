from jeevabot.models.chat_conversation import ChatConversation
from jeevabot.models.chat_message import ChatMessage
from jeevabot.models.ai_usage_stats import AiUsageStats
from jeevabot.models.learning import Module, Topic, Lesson
from jeevabot.models.performance import MockSession, UserAnalytics, AiRecommendation

__all__ = [
    "ChatConversation", "ChatMessage", "AiUsageStats", "Module", "Topic", "Lesson",
    "MockSession", "UserAnalytics", "AiRecommendation",
]
