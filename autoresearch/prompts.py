"""Prompt templates for LLM interactions."""

from typing import Sequence

SYSTEM_RESEARCH_ASSISTANT = (
    "You are a research assistant that helps analyze information and generate "
    "comprehensive academic reports. Follow output format instructions exactly."
)

# Query planning prompt
QUERY_GENERATION = """Generate {count} diverse search queries for academic research.

Topic: "{topic}"
Research Depth: {depth}

Cover distinct facets of the topic:
1. General overview and key concepts
2. Recent developments
3. Academic and scholarly sources
4. Case studies and real-world applications
5. Statistics and data
6. Expert opinion and analysis

Return ONLY a JSON array of {count} unique search query strings.
No explanations or additional text."""

# Content analysis prompt
CONTENT_ANALYSIS = """Analyze the following research content on "{topic}":

{sources}

Provide a comprehensive analysis covering:
- Main themes and key concepts
- Supporting evidence, data and statistics
- Competing perspectives and debates
- Patterns and trends across sources
- Research methodologies mentioned
- Quality and credibility of the sources
- Gaps in the available information

Write in a formal academic voice and refer to sources by their number, e.g. [1]."""

# Structured (JSON) report prompt
REPORT_STRUCTURED = """Generate a comprehensive academic research report on: "{topic}"

CONTENT ANALYSIS:
{analysis}

AVAILABLE CITATIONS:
{citations}

Return ONLY a JSON object with this EXACT structure (no markdown code blocks, no extra text):
{{
  "title": "Clear academic title for the research",
  "abstract": "150-250 word comprehensive summary of the research, key findings, and significance",
  "introduction": "3-4 paragraphs covering background, context, research significance, objectives, and scope. Include relevant citations.",
  "literature_review": "4-5 paragraphs synthesizing existing research, highlighting key studies, theoretical frameworks, and gaps in knowledge. Include citations [1], [2], etc.",
  "methodology": "2-3 paragraphs explaining the research approach, data collection methods, sources used, and analytical framework.",
  "findings": "5-7 paragraphs organized by themes, presenting key discoveries, data, statistics, and evidence from the sources. Include citations throughout.",
  "discussion": "4-5 paragraphs interpreting findings, comparing with existing research, addressing implications, limitations, and contradictions. Include citations.",
  "conclusion": "2-3 paragraphs summarizing key findings, their significance, and future research directions.",
  "recommendations": "2-3 paragraphs with specific, actionable recommendations for policy-makers, practitioners, or future research."
}}

CRITICAL: Use formal academic language, cite sources using [number] format, be comprehensive and detailed in each section."""

# Free-text fallback report prompt
REPORT_HEADINGS = """Generate a comprehensive academic research report on: "{topic}"

Based on this detailed analysis:
{analysis}

Available citations:
{citations}

Create a comprehensive academic report following this EXACT structure:

## 1. ABSTRACT
(200-250 words summary)

## 2. INTRODUCTION
(3-4 paragraphs with background, objectives, scope)

## 3. LITERATURE REVIEW
(4-5 paragraphs synthesizing existing research)

## 4. METHODOLOGY
(2-3 paragraphs explaining research approach)

## 5. FINDINGS AND RESULTS
(5-6 paragraphs organized thematically)

## 6. DISCUSSION AND ANALYSIS
(4-5 paragraphs interpreting findings)

## 7. CONCLUSION
(2-3 paragraphs summarizing key points)

## 8. RECOMMENDATIONS
(2-3 paragraphs with actionable suggestions)

Use formal academic language, cite sources using [number] format, and be comprehensive."""


def format_citation_list(citations: Sequence) -> str:
    """Numbered citation lines as shown to the model."""
    lines = []
    for idx, citation in enumerate(citations, 1):
        lines.append(f'[{idx}] {citation.author or "Unknown"}. "{citation.title}". {citation.url}')
    return "\n".join(lines)
