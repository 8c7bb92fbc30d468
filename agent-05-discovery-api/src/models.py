"""Pydantic request models for the Pharmacy Discovery API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class LocationIn(BaseModel):
    latitude: float = Field(..., description="WGS84 latitude")
    longitude: float = Field(..., description="WGS84 longitude")


class CalculateScoreRequest(BaseModel):
    pharmacy_id: str = Field(..., description="Pharmacy to score")
    user_location: LocationIn = Field(..., description="Where the patient is")
    required_services: list[str] = Field(
        default_factory=list,
        description="Services the patient needs (prescription_fulfillment, delivery, ...)",
    )


class MedicationAvailabilityRequest(BaseModel):
    pharmacy_ids: list[str] = Field(..., min_length=1, description="Pharmacies to check")
    medications: list[str] = Field(
        default_factory=list,
        description="Medication names, matched case-insensitively against inventory",
    )


class PrescriptionRequestIn(BaseModel):
    prescription_request_id: str = Field(..., description="Id of the prescription request")
    patient_id: str = Field(..., description="Requesting patient")
    patient_name: str | None = Field(None, description="Display name used in the message")
    urgency: str = Field(
        "normal",
        pattern="^(emergency|urgent|normal|routine)$",
        description="emergency, urgent, normal or routine",
    )
    medications: list[str] = Field(default_factory=list, description="Requested medication names")
    estimated_value: float | None = Field(None, ge=0, description="Estimated order value")


class NotifyPrescriptionRequest(BaseModel):
    pharmacy_ids: list[str] = Field(..., min_length=1, description="Pharmacies to notify")
    prescription_request: PrescriptionRequestIn
