"""Advisory text service: structured recommendations from an LLM.

Each request is a single call with no retry, caching or streaming. The model
is forced to answer through a tool whose input schema is the response model,
so the answer arrives as JSON that is validated like any other input.
"""

from decimal import Decimal
from typing import Annotated, Any, Self, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict, Field, StringConstraints, ValidationError
from pydantic.alias_generators import to_camel

from herdbook.clients import ClaudeClient
from herdbook.errors import AdvisoryError, ValidationFailed
from herdbook.models import Text

logger = structlog.get_logger(__name__)

Description = Annotated[str, StringConstraints(strip_whitespace=True, min_length=10)]

M = TypeVar("M", bound="AdvisoryModel")


class AdvisoryModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @classmethod
    def parse(cls, data: "AdvisoryModel | dict[str, Any]") -> Self:
        if isinstance(data, AdvisoryModel):
            data = data.model_dump(by_alias=True)
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ValidationFailed.from_pydantic(e) from e


# =============================================================================
# REQUESTS
# =============================================================================


class HealthAlertRequest(AdvisoryModel):
    species: Text
    age: int = Field(ge=0, description="Age in months")
    weight: Decimal = Field(ge=0, description="Weight in kilograms")
    symptoms: Description


class DiagnosticsRequest(AdvisoryModel):
    make: Text
    model: Text
    year: int = Field(ge=1900)
    mileage: Decimal = Field(ge=0, description="Odometer reading in kilometres")
    issue_description: Description


# =============================================================================
# RESPONSES
# =============================================================================


class HealthAlert(AdvisoryModel):
    """Predictive health alert for one animal."""

    risk_level: str = Field(description="Assessed risk level: Low, Medium, High or Critical")
    potential_issues: list[str] = Field(description="Potential health issues or diseases")
    recommended_actions: list[str] = Field(
        description="Actions for the farmer, e.g. consult a veterinarian or isolate the animal"
    )
    gestation_alert: str | None = Field(
        default=None, description="Pregnancy or birthing concern, if the symptoms suggest one"
    )
    estimated_sale_weight: float | None = Field(
        default=None, description="Expected weight at sale in kilograms"
    )
    weight_gain_advice: str | None = Field(
        default=None, description="Feeding advice to reach sale weight"
    )


class Diagnostics(AdvisoryModel):
    """Preliminary diagnostic report for one vehicle."""

    possible_causes: list[str] = Field(description="Most likely causes of the issue")
    recommended_actions: list[str] = Field(description="Diagnostic steps or checks to perform")
    estimated_cost: str | None = Field(
        default=None, description="Very rough repair cost estimate, e.g. '€100-€300'"
    )


# =============================================================================
# PROMPTS
# =============================================================================

HEALTH_SYSTEM_PROMPT = (
    "You are an expert veterinarian specialising in early disease detection in farm "
    "animals. Answer clearly and concisely for a non-expert. If the symptoms are "
    "benign, say that the risk is low."
)

HEALTH_USER_PROMPT = """Generate a predictive health alert for this animal.

Species: {species}
Age: {age} months
Weight: {weight} kg
Symptoms: {symptoms}

Assess the risk level, list potential health issues, and recommend immediate actions."""

DIAGNOSTICS_SYSTEM_PROMPT = (
    "You are an expert mechanic specialising in vehicle diagnostics. Answer clearly "
    "and concisely for a mechanic or vehicle owner. If the issue is unclear, say "
    "that more information is needed."
)

DIAGNOSTICS_USER_PROMPT = """Generate a preliminary diagnostic report for this vehicle.

Make: {make}
Model: {model}
Year: {year}
Mileage: {mileage} km
Issue description: {issue_description}

List the most likely causes and recommended checks, and optionally a rough repair cost."""


class AdvisoryService:
    """Opaque request/response wrapper around the LLM client."""

    def __init__(self, client: ClaudeClient | None = None):
        self._client = client or ClaudeClient()
        self._logger = logger.bind(component="advisory_service")

    async def health_alert(self, request: HealthAlertRequest | dict[str, Any]) -> HealthAlert:
        """Assess an animal's symptoms.

        Raises:
            ValidationFailed: If the request is incomplete; nothing is sent.
            AdvisoryError: If the service call fails or returns unusable output.
        """
        req = HealthAlertRequest.parse(request)
        prompt = HEALTH_USER_PROMPT.format(
            species=req.species, age=req.age, weight=req.weight, symptoms=req.symptoms
        )
        return await self._generate("health_alert", HEALTH_SYSTEM_PROMPT, prompt, HealthAlert)

    async def diagnostics(self, request: DiagnosticsRequest | dict[str, Any]) -> Diagnostics:
        """Suggest causes for a vehicle issue.

        Raises:
            ValidationFailed: If the request is incomplete; nothing is sent.
            AdvisoryError: If the service call fails or returns unusable output.
        """
        req = DiagnosticsRequest.parse(request)
        prompt = DIAGNOSTICS_USER_PROMPT.format(
            make=req.make,
            model=req.model,
            year=req.year,
            mileage=req.mileage,
            issue_description=req.issue_description,
        )
        return await self._generate("diagnostics", DIAGNOSTICS_SYSTEM_PROMPT, prompt, Diagnostics)

    @staticmethod
    def _output_tool(kind: str, output_model: type[AdvisoryModel]) -> dict[str, Any]:
        return {
            "name": f"report_{kind}",
            "description": f"Report the {kind.replace('_', ' ')} in structured form.",
            "input_schema": output_model.model_json_schema(by_alias=True),
        }

    async def _generate(
        self, kind: str, system_prompt: str, prompt: str, output_model: type[M]
    ) -> M:
        tool = self._output_tool(kind, output_model)
        try:
            response = await self._client.generate(
                system_prompt,
                [{"role": "user", "content": prompt}],
                tools=[tool],
                force_tool=tool["name"],
            )
        except Exception as e:
            self._logger.error("advisory_call_failed", kind=kind, error=str(e))
            raise AdvisoryError(f"Failed to generate {kind}") from e

        call = next((c for c in response.tool_calls if c["name"] == tool["name"]), None)
        if call is None:
            self._logger.error("advisory_missing_output", kind=kind, stop_reason=response.stop_reason)
            raise AdvisoryError(f"No structured {kind} in response")

        try:
            result = output_model.model_validate(call["arguments"])
        except ValidationError as e:
            self._logger.error("advisory_malformed_output", kind=kind, error=str(e))
            raise AdvisoryError(f"Malformed {kind} in response") from e

        self._logger.info("advisory_generated", kind=kind)
        return result
