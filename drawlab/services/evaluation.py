"""
AI drawing evaluation proxy.

Sends the reference image and the student's drawing to an OpenAI compatible
chat-completions gateway and pulls the JSON verdict out of the reply.
"""

import json
import logging

import requests
from pydantic import ValidationError

from drawlab.core.exceptions import (
    ConfigurationError, ProviderError, ProviderQuotaError, ProviderRateLimitError
)
from drawlab.core.schemas import EvaluationResult

logger = logging.getLogger(__name__)

FALLBACK_RESULT = {
    'score': 7,
    'accuracy': 75,
    'errors': [
        'Automatic analysis could not produce a detailed breakdown for this drawing.',
        'Re-check line weights, view alignment and dimension placement against the reference.',
    ],
    'feedback': (
        'Your drawing was received but the evaluator reply could not be read in full. '
        'Compare your views carefully with the reference image and try another evaluation '
        'for detailed feedback.'
    ),
}

PROMPT_TEMPLATE = """You are an EXTREMELY STRICT expert technical drawing evaluator specializing in {drawing_type} engineering drawings.

## CRITICAL FIRST STEP - IMAGE VALIDATION (MANDATORY)
Before ANY evaluation, you MUST determine if the student's uploaded image is actually a valid technical/engineering drawing.

### IMMEDIATELY REJECT with score 0 and accuracy 0 if the image is:
- A photograph of a real object, person, animal, or scene
- A cartoon, sketch, doodle, or artistic drawing (not engineering)
- Handwritten notes or text without technical drawings
- A screenshot of software, website, or app
- Random shapes, scribbles, or abstract art
- A meme, logo, or graphic design
- A drawing that is completely unrelated to {drawing_type} projection
- A blank or nearly blank image

If rejected, respond with:
{{
  "score": 0,
  "accuracy": 0,
  "errors": ["This is not a valid {drawing_type} engineering drawing. The uploaded image appears to be [describe what it is]. Please upload an actual technical drawing."],
  "feedback": "Your submission was rejected because it is not a technical engineering drawing. Please upload a proper {drawing_type} projection drawing on paper or from CAD software."
}}

## IF IT IS A VALID TECHNICAL DRAWING:
Analyze the student's {drawing_type} drawing (second image) compared to the reference image (first image). Be STRICT and DETAILED in your evaluation.

### Evaluation Criteria for {drawing_type} Drawings:
1. **Projection Accuracy (0-3 points)**: How accurately are the views projected? Are dimensions transferred correctly between views?
2. **View Alignment (0-2 points)**: Are Front, Top, Side views properly aligned? Are projection lines correct?
3. **Line Quality (0-2 points)**: Are object lines dark and consistent? Are hidden lines dashed correctly? Are center lines properly drawn?
4. **Dimension Accuracy (0-2 points)**: Are all dimensions present and correctly placed? Are dimension lines and arrows proper?
5. **Overall Technical Correctness (0-1 point)**: General neatness, proper spacing, title block if applicable

### Scoring Guidelines:
- 9-10: Professional quality, minimal or no errors
- 7-8: Good quality with minor issues
- 5-6: Acceptable but needs improvement
- 3-4: Poor quality with significant errors
- 1-2: Very poor, major fundamental errors
- 0: Not a valid technical drawing OR completely wrong type of drawing

Provide your evaluation in the following JSON format ONLY (no other text):
{{
  "score": <number from 0-10>,
  "accuracy": <percentage from 0-100>,
  "errors": [<array of specific errors found, be detailed, max 5>],
  "feedback": "<constructive feedback paragraph explaining strengths and areas for improvement>"
}}"""


def build_prompt(drawing_type):
    return PROMPT_TEMPLATE.format(drawing_type=drawing_type)


def extract_json_object(text):
    """Return the first decodable ``{...}`` object embedded in free text"""
    if not text:
        return None
    decoder = json.JSONDecoder()
    start = text.find('{')
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except ValueError:
            obj = None
        if isinstance(obj, dict):
            return obj
        start = text.find('{', start + 1)
    return None


def parse_evaluation(content):
    """Model reply -> EvaluationResult dict, or the fixed fallback"""
    payload = extract_json_object(content)
    if payload is None:
        logger.warning("No JSON object found in AI response; using fallback result")
        return dict(FALLBACK_RESULT)
    try:
        return EvaluationResult.model_validate(payload).model_dump()
    except ValidationError as e:
        logger.warning(f"AI response JSON did not match the result shape: {e}")
        return dict(FALLBACK_RESULT)


class DrawingEvaluator:
    """Stateless client for the multimodal completion gateway"""

    def __init__(self, api_key, gateway_url, model, timeout=120, http=None):
        self.api_key = api_key
        self.gateway_url = gateway_url
        self.model = model
        self.timeout = timeout
        self.http = http or requests.Session()

    @classmethod
    def from_config(cls, config, http=None):
        return cls(
            api_key=config.AI_API_KEY,
            gateway_url=config.AI_GATEWAY_URL,
            model=config.AI_MODEL,
            timeout=config.AI_TIMEOUT,
            http=http,
        )

    def build_messages(self, user_drawing, reference_image, drawing_type):
        return [
            {
                'role': 'user',
                'content': [
                    {'type': 'text', 'text': build_prompt(drawing_type)},
                    {'type': 'image_url', 'image_url': {'url': reference_image}},
                    {'type': 'image_url', 'image_url': {'url': user_drawing}},
                ],
            }
        ]

    def evaluate(self, user_drawing, reference_image, drawing_type):
        """Single attempt, no retry. Provider failures raise ProviderError subclasses."""
        if not self.api_key:
            raise ConfigurationError('AI_API_KEY is not configured')

        logger.info(f"Evaluating {drawing_type} drawing")
        try:
            response = self.http.post(
                self.gateway_url,
                headers={
                    'Authorization': f'Bearer {self.api_key}',
                    'Content-Type': 'application/json',
                },
                json={
                    'model': self.model,
                    'messages': self.build_messages(user_drawing, reference_image, drawing_type),
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"AI gateway request failed: {e}")
            raise ProviderError(f'AI gateway request failed: {e}')

        if not response.ok:
            logger.error(f"AI gateway error: {response.status_code} {response.text[:500]}")
            if response.status_code == 429:
                raise ProviderRateLimitError()
            if response.status_code == 402:
                raise ProviderQuotaError()
            raise ProviderError(f'AI gateway error: {response.status_code}')

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        choices = data.get('choices') or [{}]
        content = ((choices[0] or {}).get('message') or {}).get('content') or ''
        logger.debug(f"AI response: {content}")

        return parse_evaluation(content)
