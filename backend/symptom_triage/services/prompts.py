"""
Symptom Triage - Prompt Templates

Deterministic prompt construction: the same request always produces the
same prompt text.
"""

from typing import Sequence

from symptom_triage.core.types import ClassificationRequest


RESPONSE_FIELDS = (
    "priority",
    "risk_score",
    "recommendations",
    "red_flags",
    "confidence",
    "explanation",
    "next_steps",
    "follow_up_questions",
    "medical_disclaimer",
)

TRIAGE_PROMPT_TEMPLATE = """You are a medical AI assistant designed to analyze symptoms and provide preliminary health guidance.

IMPORTANT SAFETY RULES:
1. ALWAYS prioritize patient safety
2. If ANY emergency symptoms are mentioned, immediately classify as EMERGENCY
3. Be conservative in risk assessment
4. Always recommend professional medical consultation
5. Never provide definitive diagnoses
6. Always include medical disclaimers

PATIENT INFORMATION:
- Age: {age} years
- Gender: {gender}
- Medical History: {medical_history}
- Current Symptoms: {symptoms}
- Conversation History: {conversation_history}

EMERGENCY SYMPTOMS (immediate classification):
- Chest pain, pressure, or tightness
- Severe difficulty breathing
- Severe bleeding
- Loss of consciousness
- Severe head injury
- Paralysis or weakness
- Severe allergic reactions

URGENT SYMPTOMS (within 24 hours):
- High fever (>103°F/39.4°C)
- Severe pain
- Persistent vomiting/diarrhea
- Signs of infection
- Sudden vision changes

Please analyze the symptoms and provide a structured response in the following JSON format:

{{
  "priority": "emergency|urgent|non_urgent",
  "risk_score": 0-100,
  "recommendations": ["array of specific recommendations"],
  "red_flags": ["array of concerning symptoms"],
  "confidence": 0.0-1.0,
  "explanation": "detailed explanation of analysis",
  "next_steps": ["immediate actions to take"],
  "follow_up_questions": ["questions to better understand symptoms"],
  "medical_disclaimer": "standard medical disclaimer"
}}

Focus on safety and always err on the side of caution."""


FOLLOW_UP_PROMPT_TEMPLATE = """Based on the symptoms "{symptoms}" and the previous conversation context, generate 3-5 relevant follow-up questions to better understand the patient's condition.

Context: {context}

Questions should be:
- Medically relevant
- Easy to understand
- Focused on timing, severity, triggers, and associated symptoms

Return only the questions, one per line, without numbering."""


def build_triage_prompt(request: ClassificationRequest) -> str:
    """Build the classification prompt for one request."""
    patient = request.patient
    return TRIAGE_PROMPT_TEMPLATE.format(
        age=patient.age,
        gender=patient.gender,
        medical_history=", ".join(patient.medical_history) or "None reported",
        symptoms=request.symptoms,
        conversation_history=" | ".join(request.conversation_history) or "None",
    )


def build_follow_up_prompt(symptoms: str, context: Sequence[str]) -> str:
    return FOLLOW_UP_PROMPT_TEMPLATE.format(
        symptoms=symptoms,
        context="\n".join(context) or "None",
    )
