from __future__ import annotations  # Prompt templates and registry wiring for LLM-backed capabilities

from pathlib import Path
from textwrap import dedent
from typing import Dict, List, Optional, Type

from langchain_core.prompts import ChatPromptTemplate
from pydantic import BaseModel

from agents.types import ResponseAnalysis, TopicExtraction, TurnScore
from config.registry import RESPONSE_ANALYSIS_KEY, TOPIC_EXTRACTION_KEY, TURN_SCORING_KEY
from config.routes import AppConfig, load_config, resolve_registry
from llm_gateway import HttpClient, bind_route

TOPIC_EXTRACTION_GUIDANCE = dedent(  # Extraction instructions for the topic model
    """
    You extract conversational topics from one interview exchange.
    Return between 1 and 5 short topic labels (1-4 words each), most central first.
    Prefer concrete technologies, domains and responsibilities over generic words.
    Never invent topics that the exchange does not mention.
    """
).strip()

RESPONSE_ANALYSIS_GUIDANCE = dedent(  # Signal extraction instructions for the analysis model
    """
    You assess how engaged a candidate is in one interview answer.
    engagement_level: high for specific, detailed, enthusiastic answers; low for evasive or minimal ones.
    exhaustion_signals: any of short_answer, dont_know, vague, repetition, off_topic that apply.
    new_topics: concrete subtopics the candidate introduced that are worth probing deeper.
    buzzwords: technologies, tools and named practices mentioned verbatim.
    response_length: detailed, moderate or brief. confidence_level: confident, uncertain or struggling.
    """
).strip()

TURN_SCORING_GUIDANCE = dedent(  # Grading instructions for the scoring model
    """
    You grade one interview answer on a 0.0 to 2.0 scale.
    2.0 means specific, well reasoned and grounded in first-hand experience.
    1.0 means adequate but generic. Below 0.5 means evasive, wrong or empty.
    Deeper topics deserve stricter grading. Explain the grade in one sentence.
    """
).strip()

TOPIC_EXTRACTION_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", TOPIC_EXTRACTION_GUIDANCE),
        ("human", "Question:\n{question}\n\nAnswer:\n{answer}\n\nReturn JSON with a topics array."),
    ]
)

RESPONSE_ANALYSIS_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", RESPONSE_ANALYSIS_GUIDANCE),
        (
            "human",
            (
                "Current topic: {current_topic}\n"
                "Answer length in words: {word_count}\n\n"
                "Question:\n{question}\n\nAnswer:\n{answer}"
            ),
        ),
    ]
)

TURN_SCORING_PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", TURN_SCORING_GUIDANCE),
        (
            "human",
            (
                "Topic: {topic} (depth {depth})\n"
                "Recent exchanges: {history}\n"
                "Engagement signals: {signals}\n\n"
                "Question:\n{question}\n\nAnswer:\n{answer}"
            ),
        ),
    ]
)

CAPABILITIES: Dict[str, tuple[Type[BaseModel], ChatPromptTemplate]] = {
    TOPIC_EXTRACTION_KEY: (TopicExtraction, TOPIC_EXTRACTION_PROMPT),
    RESPONSE_ANALYSIS_KEY: (ResponseAnalysis, RESPONSE_ANALYSIS_PROMPT),
    TURN_SCORING_KEY: (TurnScore, TURN_SCORING_PROMPT),
}


def bind_capabilities(cfg: AppConfig, *, client: Optional[HttpClient] = None) -> List[str]:
    """Bind every capability the app config routes to an LLM; returns bound keys."""

    wanted = {key: spec[0] for key, spec in CAPABILITIES.items() if key in cfg.registry}
    resolved = resolve_registry(cfg, wanted)
    for key, (route, schema) in resolved.items():
        bind_route(key, route, schema, CAPABILITIES[key][1], client=client, options={"temperature": 0.0})
    return sorted(resolved)


def bind_capabilities_from_file(path: Path, *, client: Optional[HttpClient] = None) -> List[str]:
    return bind_capabilities(load_config(path), client=client)


__all__ = [
    "CAPABILITIES",
    "RESPONSE_ANALYSIS_PROMPT",
    "TOPIC_EXTRACTION_PROMPT",
    "TURN_SCORING_PROMPT",
    "bind_capabilities",
    "bind_capabilities_from_file",
]
