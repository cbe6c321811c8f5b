"""
Keyword-based reasoning collaborator.
Scores a profile against job requirements without calling an external model.
Used in dev mode and whenever no OpenAI key is configured.
"""
import json
import re
from typing import List, Optional, Tuple


class ProfileParser:
    """Extract skills, seniority and education from free text."""

    # Common technical skills
    TECHNICAL_SKILLS = {
        # Languages
        "python", "java", "javascript", "typescript", "go", "rust", "c++", "c#",
        "ruby", "php", "swift", "kotlin", "scala", "elixir", "sql", "r",

        # Frontend
        "react", "vue", "angular", "svelte", "next.js", "html", "css", "tailwind",

        # Backend
        "node.js", "express", "fastapi", "django", "flask", "spring", "rails",
        "graphql", "rest api", "grpc", "microservices", "distributed systems",

        # Databases
        "postgresql", "postgres", "mysql", "mongodb", "redis", "elasticsearch",
        "dynamodb", "supabase",

        # Cloud & DevOps
        "aws", "gcp", "azure", "kubernetes", "docker", "terraform", "ci/cd",
        "linux", "observability",

        # Data & AI
        "machine learning", "deep learning", "nlp", "pytorch", "tensorflow",
        "pandas", "spark", "kafka", "airflow", "data engineering",

        # Product & process
        "product management", "agile", "scrum", "sales", "recruiting",
        "marketing", "finance", "leadership",
    }

    SENIORITY_LEVELS = ("junior", "mid", "senior", "executive")

    EDUCATION_LEVELS = {
        "phd": 3, "ph.d": 3, "doctorate": 3,
        "master": 2, "msc": 2, "mba": 2, "m.s.": 2,
        "bachelor": 1, "bsc": 1, "b.s.": 1, "b.a.": 1, "degree": 1,
    }

    @staticmethod
    def extract_skills(text: str) -> List[str]:
        """Extract known skills from text."""
        if not text:
            return []

        text_lower = text.lower()
        found_skills = []

        for skill in ProfileParser.TECHNICAL_SKILLS:
            # Use word boundary matching to avoid partial matches
            pattern = r'(?<![\w])' + re.escape(skill) + r'(?![\w])'
            if re.search(pattern, text_lower):
                found_skills.append(skill)

        return sorted(set(found_skills))

    @staticmethod
    def extract_experience_years(text: str) -> Optional[int]:
        """Extract total years of experience from text."""
        if not text:
            return None

        # Look for patterns like "5+ years", "5 years", "experience: 5 years"
        patterns = [
            r'(\d+)\+?\s*years?\s*(?:of\s*)?(?:experience|work)',
            r'experience:\s*(\d+)\+?\s*years?',
            r'(\d+)\+?\s*years?\s*(?:in\s*)?(?:software|web|full-?stack|industry)',
        ]

        for pattern in patterns:
            match = re.search(pattern, text.lower())
            if match:
                return int(match.group(1))

        return None

    @staticmethod
    def infer_seniority(text: str) -> Optional[str]:
        """Infer seniority level from text.

        Priority:
        1. Explicit "Experience Level:" line (listing requirements)
        2. Seniority keywords in titles (Senior, Staff, Principal, Junior)
        3. Years of experience
        """
        if not text:
            return None

        text_lower = text.lower()

        explicit = re.search(r'experience level:\s*(junior|mid|senior|executive)', text_lower)
        if explicit:
            return explicit.group(1)

        if re.search(r"\b(vp|director|head of|chief|cto|executive)\b", text_lower):
            return "executive"

        if re.search(r"\b(staff|principal|architect|senior|lead|sr\.)", text_lower):
            return "senior"

        if re.search(r"\b(junior|entry|graduate|intern)\b", text_lower):
            return "junior"

        years = ProfileParser.extract_experience_years(text)
        if years is not None:
            if years < 2:
                return "junior"
            elif years < 5:
                return "mid"
            elif years < 12:
                return "senior"
            return "executive"

        return None

    @staticmethod
    def education_level(text: str) -> int:
        """0 = none found, 1 = bachelor, 2 = master, 3 = doctorate."""
        if not text:
            return 0
        text_lower = text.lower()
        return max(
            (level for keyword, level in ProfileParser.EDUCATION_LEVELS.items() if keyword in text_lower),
            default=0,
        )


def score_skills(job_text: str, profile_text: str) -> Tuple[int, List[str], List[str]]:
    """Return (score, matched skills, missing skills)."""
    job_skills = ProfileParser.extract_skills(job_text)
    if not job_skills:
        return 50, [], []

    profile_skills = set(ProfileParser.extract_skills(profile_text))
    matched = [skill for skill in job_skills if skill in profile_skills]
    missing = [skill for skill in job_skills if skill not in profile_skills]
    return round(100 * len(matched) / len(job_skills)), matched, missing


def score_experience(job_text: str, profile_text: str) -> Tuple[int, Optional[str], Optional[str]]:
    """Return (score, job level, candidate level)."""
    job_level = ProfileParser.infer_seniority(job_text)
    candidate_level = ProfileParser.infer_seniority(profile_text)
    if not job_level or not candidate_level:
        return 50, job_level, candidate_level

    levels = ProfileParser.SENIORITY_LEVELS
    gap = levels.index(candidate_level) - levels.index(job_level)
    if gap == 0:
        score = 90
    elif gap == 1:
        score = 75  # Overqualified by one step
    elif gap == -1:
        score = 55
    else:
        score = 30
    return score, job_level, candidate_level


def score_education(job_text: str, profile_text: str) -> Tuple[int, int, int]:
    """Return (score, required level, candidate level)."""
    required = ProfileParser.education_level(job_text)
    candidate = ProfileParser.education_level(profile_text)
    if not required:
        return (70 if candidate else 60), required, candidate
    if candidate >= required:
        return 90, required, candidate
    return 40, required, candidate


class HeuristicReasoningClient:
    """
    Local stand-in for the reasoning collaborator.

    Produces the same JSON shape as the model-backed client so it goes
    through the same strict parse. Deterministic for identical inputs.
    """

    async def analyze(self, job_requirements: str, candidate_profile: str) -> str:
        skills_score, matched, missing = score_skills(job_requirements, candidate_profile)
        experience_score, job_level, candidate_level = score_experience(job_requirements, candidate_profile)
        education_score, required_edu, candidate_edu = score_education(job_requirements, candidate_profile)

        overall = 0.5 * skills_score + 0.3 * experience_score + 0.2 * education_score
        # A weak skills match caps the overall score no matter how good the rest is
        if skills_score < 30:
            overall = min(overall, skills_score + 20)
        overall_score = max(0, min(100, round(overall)))

        strengths = []
        concerns = []
        if matched:
            strengths.append(f"Hands-on with {', '.join(matched[:5])}")
        if job_level and job_level == candidate_level:
            strengths.append(f"Seniority matches the {job_level} level of the role")
        if required_edu and candidate_edu >= required_edu:
            strengths.append("Meets the education requirement")

        if missing:
            concerns.append(f"No evidence of {', '.join(missing[:3])}")
        if job_level and candidate_level and job_level != candidate_level:
            concerns.append(f"Profile reads as {candidate_level}, role is {job_level}")
        if required_edu and candidate_edu < required_edu:
            concerns.append("Education below the stated requirement")

        reasoning = (
            f"Matched {len(matched)} of {len(matched) + len(missing)} listed skills; "
            f"experience fit {experience_score}/100; education fit {education_score}/100."
        )

        return json.dumps({
            "overall_score": overall_score,
            "skills_score": skills_score,
            "experience_score": experience_score,
            "education_score": education_score,
            "reasoning": reasoning,
            "key_strengths": strengths,
            "potential_concerns": concerns,
        })
