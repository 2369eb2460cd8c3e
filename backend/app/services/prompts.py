from __future__ import annotations

from datetime import datetime
from typing import Any

from app.core.json_fields import loads_list
from app.models.candidate import Candidate
from app.models.hiring_request import HiringRequest
from app.schemas.ai import AnalysisResult

NOT_PROVIDED = "Not provided"


def _skills(candidate: Candidate) -> str:
    skills = [str(item) for item in loads_list(candidate.key_skills_json)]
    return ", ".join(skills) or NOT_PROVIDED


def candidate_analysis_prompt(candidate: Candidate) -> str:
    return f"""You are an expert HR analyst for Vamos, an AI-first company.

Analyze this candidate profile and provide a general assessment of their potential fit for a tech company.

CANDIDATE DATA:
Name: {candidate.display_name}
About: {candidate.about_text or NOT_PROVIDED}
Why Vamos: {candidate.why_vamos or NOT_PROVIDED}
Skills: {_skills(candidate)}
LinkedIn: {candidate.linkedin_url or NOT_PROVIDED}
Portfolio: {candidate.portfolio_url or NOT_PROVIDED}

EVALUATION CRITERIA:
1. Overall Score (1-10): 1-3 not recommended, 4-6 potential, 7-8 strong, 9-10 top tier
2. Category: top_tier / strong / potential / not_fit
3. Brief Summary (2-3 sentences)
4. Key Strengths (max 5)
5. Concerns or Gaps (max 3)
6. Recommendation: should we pursue this candidate?

Return your analysis as a JSON object with this structure:
{{
  "score": number (1-10),
  "category": "top_tier" | "strong" | "potential" | "not_fit",
  "summary": "string",
  "strengths": ["string"],
  "concerns": ["string"],
  "recommendation": "yes" | "no",
  "reasoning": "string"
}}"""


def request_match_prompt(candidate: Candidate, analysis: AnalysisResult, request: HiringRequest) -> str:
    return f"""You are matching a candidate to a specific hiring request.

CANDIDATE PROFILE:
Name: {candidate.display_name}
AI Score: {analysis.score}/10
Category: {analysis.category}
Summary: {analysis.summary}
Strengths: {', '.join(analysis.strengths)}
Skills: {_skills(candidate)}

REQUEST REQUIREMENTS:
Title: {request.title}
Required Skills: {request.required_skills or 'None'}
Nice-to-Have Skills: {request.nice_to_have_skills or 'None'}
Soft Skills: {request.soft_skills or 'None'}

Calculate a match score (0-100): required skills 40%, nice-to-have skills 20%,
soft skills 20%, AI orientation 10%, overall candidate quality 10%.

Return JSON with this structure:
{{
  "match_score": number (0-100),
  "alignment": "string (how they match requirements)",
  "missing": "string (what's not aligned)",
  "recommendation": "strong_match" | "moderate_match" | "weak_match"
}}"""


def classification_prompt(text: str, *, has_received_test_task: bool, deadline: datetime | None, now: datetime) -> str:
    deadline_line = f"- Current test task deadline: {deadline.isoformat()}\n" if deadline else ""
    return f"""You are analyzing a candidate's response in a hiring conversation.

Context:
- Has candidate received test task yet? {'YES' if has_received_test_task else 'NO'}
{deadline_line}- Current date: {now.isoformat()}

Candidate's message:
\"\"\"
{text}
\"\"\"

Classify this message into ONE category:
1. positive_ready - clear agreement to proceed with the test task ("Так", "Готовий", "Send me the task")
2. positive_with_questions - interested but has questions first
3. request_deadline_extension - asking for more time (ONLY if the test task was already sent)
4. questions_about_job - asking about the role, company or conditions
5. negative - not interested or declining
6. test_task_submission - the message IS the test task solution
7. unclear - ambiguous or off-topic

IMPORTANT:
- If the candidate has NOT received the test task, "request_deadline_extension" is IMPOSSIBLE
- A detailed solution or answer is "test_task_submission"

Return JSON only:
{{
  "category": "positive_ready",
  "confidence": 0.95,
  "extracted_info": {{
    "requested_deadline_date": null,
    "requested_extension_days": null,
    "questions": []
  }}
}}"""


def deadline_request_prompt(text: str, *, current_deadline: datetime, now: datetime) -> str:
    return f"""You are parsing a deadline extension request in Ukrainian or English.

Current deadline: {current_deadline.isoformat()}
Current date: {now.isoformat()}

Candidate's message:
\"\"\"
{text}
\"\"\"

Extract the requested new deadline, how many additional days it adds to the CURRENT
deadline, and whether it is reasonable (7 days or less). Handle relative phrases
such as "до четверга", "ще 3 дні", "до 15 лютого", "до кінця тижня".

Return JSON only:
{{
  "requested_date": "2026-02-12T18:00:00+02:00",
  "additional_days": 3,
  "is_reasonable": true,
  "reason": "Candidate requested 3 more days until Thursday"
}}

If you cannot parse the request, return:
{{"requested_date": null, "additional_days": null, "is_reasonable": false, "reason": "Could not understand deadline request"}}"""


def question_answer_prompt(question: str, candidate: Candidate, request: HiringRequest | None) -> str:
    request_block = ""
    if request is not None:
        request_block = f"Позиція: {request.title}\nОпис: {request.description or 'Не вказано'}\n"
    return f"""Ти дружній HR-спеціаліст компанії Vamos (AI-first tech company).
Кандидат {candidate.first_name} задає питання. Дай коротку, дружню відповідь УКРАЇНСЬКОЮ.

{request_block}
Питання кандидата: "{question}"

Правила:
- Відповідай коротко (2-3 речення максимум)
- Будь дружнім, але не обіцяй конкретних умов (зарплату тощо)
- Якщо не знаєш відповіді, скажи що уточниш у команди
- Наприкінці м'яко запитай чи готові вони пройти тестове завдання
- НЕ використовуй емодзі
- Пиши ТІЛЬКИ текст відповіді"""


def outreach_personalization_prompt(template: str, candidate: Candidate, request: HiringRequest) -> str:
    return f"""Ти HR-спеціаліст компанії Vamos. Перед тобою затверджений шаблон першого повідомлення кандидату.
Адаптуй його під кандидата УКРАЇНСЬКОЮ мовою, зберігаючи зміст і тон шаблону.

=== ШАБЛОН ===
{template}

=== КАНДИДАТ ===
Ім'я: {candidate.first_name}
Про себе: {candidate.about_text or 'Не вказано'}
Навички: {_skills(candidate)}

=== ПОЗИЦІЯ ===
{request.title}

Правила:
- Звертайся на ім'я, без прізвища
- Не додавай нових обіцянок щодо умов чи зарплати
- Не більше 120 слів, без емодзі, без підпису
- Пиши ТІЛЬКИ текст повідомлення без лапок"""


def warm_intro_prompt(candidate: Candidate, analysis: AnalysisResult, best_request: HiringRequest | None, match_score: float | None) -> str:
    position_block = ""
    ask = "Скажи, що є цікаві можливості для обговорення"
    if best_request is not None:
        position_block = (
            "=== НАЙКРАЩА ПОЗИЦІЯ ===\n"
            f"Назва: {best_request.title}\n"
            f"Match Score: {match_score if match_score is not None else '-'}/100\n"
            f"Опис: {best_request.description or 'Не вказано'}\n"
        )
        ask = f'Згадай позицію "{best_request.title}" як потенційну можливість'
    return f"""Ти дружній та професійний HR-спеціаліст компанії Vamos.
Напиши персоналізоване привітальне повідомлення кандидату УКРАЇНСЬКОЮ мовою.

=== ДАНІ КАНДИДАТА ===
Ім'я: {candidate.first_name}
Про себе: {candidate.about_text or 'Не вказано'}
Чому Vamos: {candidate.why_vamos or 'Не вказано'}
Навички: {_skills(candidate)}

=== AI ОЦІНКА ===
Бал: {analysis.score}/10
Категорія: {analysis.category}
Сильні сторони: {', '.join(analysis.strengths[:3])}
Резюме: {analysis.summary}

{position_block}
=== ВИМОГИ ===
1. Дружнє привітання на ім'я (без прізвища)
2. Подякуй за заявку та інтерес до Vamos
3. Вкажи 1-2 конкретні речі з профілю
4. {ask}
5. Заверши запитанням, чи готові пройти невелике тестове завдання
6. НЕ підписуй повідомлення, не більше 120 слів, без емодзі

Напиши ТІЛЬКИ текст повідомлення, без пояснень і лапок."""


def task_message_prompt(candidate: Candidate, request: HiringRequest, task_url: str, deadline_text: str) -> str:
    return f"""Напиши коротке повідомлення кандидату про тестове завдання УКРАЇНСЬКОЮ мовою.

=== ДАНІ ===
Ім'я кандидата: {candidate.first_name}
Позиція: {request.title}
Посилання на завдання: {task_url}
Дедлайн: {deadline_text}

=== ВИМОГИ ===
1. Коротке привітання
2. Подякуй за готовність виконати тестове
3. Дай посилання на завдання і вкажи дедлайн
4. Запропонуй написати, якщо виникнуть питання
5. НЕ підписуй, не більше 80 слів, без емодзі

Напиши ТІЛЬКИ текст повідомлення без лапок."""


def submission_evaluation_prompt(submission: str, criteria: str, task_description: str) -> str:
    return f"""You are evaluating a candidate's test task submission for a hiring process.

Test task description:
\"\"\"
{task_description}
\"\"\"

Evaluation criteria:
\"\"\"
{criteria}
\"\"\"

Candidate's submission:
\"\"\"
{submission}
\"\"\"

Provide a score from 1-10, a detailed evaluation (3-5 sentences), key strengths
(2-3 points) and areas for improvement (1-2 points). Be constructive and fair.
ALL text values in the response MUST be in Ukrainian.

Return JSON only:
{{
  "score": 8,
  "evaluation": "string",
  "strengths": ["string"],
  "improvements": ["string"]
}}"""


def questionnaire_evaluation_prompt(questions: list[dict[str, Any]], answers: dict[str, str]) -> str:
    blocks = []
    competencies: dict[Any, str] = {}
    for question in questions:
        qid = str(question.get("question_id"))
        competency_name = question.get("competency_name") or ""
        competencies[question.get("competency_id")] = competency_name
        blocks.append(
            f"[{competency_name}] Питання: {question.get('text')}\nВідповідь кандидата: {answers.get(qid, '')}"
        )
    competency_lines = "\n".join(f"- {cid}: {name}" for cid, name in competencies.items())
    qa_text = "\n\n".join(blocks)
    return f"""Ти досвідчений HR-аналітик компанії Vamos. Оціни відповіді кандидата на анкету soft skills.

Компетенції:
{competency_lines}

Відповіді:
{qa_text}

Усі текстові значення пиши УКРАЇНСЬКОЮ.
Поверни ТІЛЬКИ JSON:
{{
  "score": 7,
  "summary": "Загальний висновок (3-5 речень)",
  "strengths": ["string"],
  "concerns": ["string"],
  "recommendation": "Рекомендація (1-2 речення)",
  "per_competency": [
    {{"competency_id": 1, "competency_name": "string", "score": 8, "comment": "string"}}
  ]
}}"""
