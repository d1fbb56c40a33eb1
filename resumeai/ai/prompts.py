"""Prompt templates for resume and job description operations."""

import json

ANALYSIS_FORMAT = """{
  "analysis": {
    "score": number (0-100),
    "feedback": string[],
    "suggestions": string[]
  },
  "atsCompatibility": {
    "overall": number (0-100),
    "format": number (0-100),
    "content": number (0-100),
    "keywords": number (0-100),
    "improvements": string[]
  }
}"""

JOB_PARSE_FORMAT = """{
  "requiredSkills": string[],
  "preferredSkills": string[],
  "experience": {
    "years": number,
    "level": string
  },
  "education": string[],
  "responsibilities": string[],
  "technicalRequirements": {
    "tools": string[],
    "platforms": string[],
    "methodologies": string[]
  },
  "softSkills": string[],
  "benefits": string[],
  "metadata": {
    "seniorityLevel": string,
    "employmentType": string,
    "workplaceType": string,
    "locations": string[]
  }
}"""

ATS_SCORE_FORMAT = """{
  "overall": number (0-100),
  "format": number (0-100),
  "content": number (0-100),
  "keywords": number (0-100)
}"""

SUGGESTIONS_FORMAT = """{
  "strengths": string[],
  "weaknesses": string[],
  "improvements": string[]
}"""

JOB_ANALYSIS_FORMAT = """{
  "keyRequirements": string[],
  "technicalSkills": string[],
  "softSkills": string[],
  "roleResponsibilities": string[],
  "experienceLevels": {"minimum": number, "preferred": number}
}"""

TAILOR_FORMAT = """{
  "enhancedContent": object,
  "matchScore": number (0-100),
  "suggestions": string[],
  "matchedKeywords": string[]
}"""

_JSON_ONLY = "Respond with a single JSON object and nothing else."

_MODE_INSTRUCTIONS = {
    "analyze": (
        "Evaluate the clarity, impact and relevance of this section. "
        "Point out weak phrasing and missing quantifiable achievements."
    ),
    "improve": (
        "Focus on concrete rewrites: each suggestion should be an improved "
        "version of a sentence or bullet from the section."
    ),
}


def _job_context(job_description: str | None) -> str:
    if not job_description:
        return ""
    return f"\nTarget Job Description:\n{job_description}\n"


def build_analysis_prompt(
    section: str, content: str, mode: str, job_description: str | None = None
) -> str:
    return (
        f"You are an expert resume reviewer. Review the \"{section}\" section of a resume.\n"
        f"{_MODE_INSTRUCTIONS[mode]}\n\n"
        f"Section content:\n{content}\n"
        f"{_job_context(job_description)}\n"
        f"Provide the analysis in the following JSON format:\n{ANALYSIS_FORMAT}\n"
        f"{_JSON_ONLY}"
    )


def build_job_parse_prompt(content: str, target_role: str | None = None) -> str:
    role = f"\nTarget Role Context: {target_role}\n" if target_role else ""
    return (
        "Analyze the following job description and extract structured information:\n\n"
        f"{content}\n{role}\n"
        f"Provide the analysis in the following JSON format:\n{JOB_PARSE_FORMAT}\n"
        f"{_JSON_ONLY}"
    )


def build_ats_score_prompt(resume: dict, job_description: str | None = None) -> str:
    return (
        "Analyze the following resume for ATS compatibility:\n"
        f"{json.dumps(resume, sort_keys=True)}\n"
        f"{_job_context(job_description)}\n"
        f"Provide a scoring analysis in the following JSON format:\n{ATS_SCORE_FORMAT}\n\n"
        "Consider:\n"
        "1. Proper formatting and structure\n"
        "2. Keyword optimization\n"
        "3. Content relevance\n"
        "4. Quantifiable achievements\n"
        f"{_JSON_ONLY}"
    )


def build_suggestions_prompt(resume: dict, job_description: str | None = None) -> str:
    return (
        "Analyze the following resume and provide improvement suggestions:\n"
        f"{json.dumps(resume, sort_keys=True)}\n"
        f"{_job_context(job_description)}\n"
        f"Provide analysis in the following JSON format:\n{SUGGESTIONS_FORMAT}\n\n"
        "Focus on:\n"
        "1. Content strength and impact\n"
        "2. Skills alignment\n"
        "3. Achievement highlighting\n"
        "4. Professional presentation\n"
        f"{_JSON_ONLY}"
    )


def build_job_analysis_prompt(description: str) -> str:
    return (
        "You are a professional resume analyzer. Analyze the following job description "
        "and extract its key components.\n\n"
        f"{description}\n\n"
        f"Respond in the following JSON format:\n{JOB_ANALYSIS_FORMAT}\n"
        f"{_JSON_ONLY}"
    )


def build_tailor_prompt(resume: dict, job_analysis: dict) -> str:
    return (
        "You are a professional resume optimizer. Enhance the resume content to match "
        "the job requirements while maintaining factual accuracy. Never invent "
        "employers, titles, dates or degrees.\n\n"
        f"Resume:\n{json.dumps(resume, sort_keys=True)}\n\n"
        f"Job analysis:\n{json.dumps(job_analysis, sort_keys=True)}\n\n"
        f"Respond in the following JSON format:\n{TAILOR_FORMAT}\n"
        f"{_JSON_ONLY}"
    )
