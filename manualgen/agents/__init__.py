"""
Pipeline workers and the runtime they execute on.
"""

from .analysis_agent import AnalysisAgent, accessibility_score, parse_ai_json
from .content_agent import ContentAgent, build_manual
from .crawler_agent import CrawlerAgent
from .generator_agent import GeneratorAgent
from .login_agent import LoginAgent
from .runtime import AgentRegistry, BaseAgent, Task, TaskRecord, TaskResult
from .screenshot_agent import ScreenshotAgent

__all__ = [
    'AgentRegistry',
    'AnalysisAgent',
    'BaseAgent',
    'ContentAgent',
    'CrawlerAgent',
    'GeneratorAgent',
    'LoginAgent',
    'ScreenshotAgent',
    'Task',
    'TaskRecord',
    'TaskResult',
    'accessibility_score',
    'build_manual',
    'parse_ai_json',
]
