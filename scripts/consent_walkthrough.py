#!/usr/bin/env python
"""Consent Walkthrough Demo Scripts.

Drives a consent session through the workflow engine on a virtual clock,
so a full consent (several minutes of patient time) runs instantly and
reproducibly. Useful for sponsor demos and for inspecting the completion
export without a browser.

Usage:
    python scripts/consent_walkthrough.py happy      # Full consent to export
    python scripts/consent_walkthrough.py lockout    # Code attempts exhausted
    python scripts/consent_walkthrough.py shortcuts  # Gates refusing skipped steps
    python scripts/consent_walkthrough.py all        # Run every scenario

The happy path writes its completion export to the output directory.
"""

import argparse
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from econsent.core.config import Settings
from econsent.core.logging import setup_logging
from econsent.protocols.loader import load_protocol
from econsent.services.export import build_completion_export, verify_export
from econsent.services.workflow import ConsentWorkflow, WorkflowRegistry
from econsent.utils.time import format_datetime
from econsent.workflow.backends import LoggingCodeDelivery
from econsent.workflow.clock import VirtualClock
from econsent.workflow.models import PatientProfile
from econsent.workflow.outcomes import Outcome
from econsent.workflow.sequencer import Stage

DEMO_PATIENT = PatientProfile(
    patient_id="P-2024-001234",
    name="Sarah Johnson",
    email="sarah.johnson@email.com",
)

DEMO_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)


@dataclass
class DemoResult:
    """Result of a demo scenario."""

    scenario: str
    success: bool
    artifacts: list[str] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


class ConsentDemoRunner:
    """Runs consent walkthrough scenarios against a virtual clock."""

    def __init__(self, output_dir: Path, protocol_file: str = "cardio-2024-01.yaml"):
        self.output_dir = output_dir
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.settings = Settings(_env_file=None, env="dev")
        self.protocol = load_protocol(protocol_file)

    def _new_workflow(self) -> tuple[VirtualClock, LoggingCodeDelivery, ConsentWorkflow]:
        clock = VirtualClock()
        delivery = LoggingCodeDelivery(reveal_code=True)
        registry = WorkflowRegistry(clock, self.protocol, self.settings, delivery=delivery)
        workflow, _ = registry.open_session(
            DEMO_PATIENT,
            user_agent=DEMO_USER_AGENT,
            ip_address="203.0.113.10",
        )
        return clock, delivery, workflow

    @staticmethod
    def _show(label: str, outcome: Outcome) -> None:
        status = "OK" if outcome.allowed else f"REFUSED ({outcome.reason.value})"
        print(f"  {label}: {status}")
        if outcome.message:
            print(f"    {outcome.message}")

    def run_happy_path(self) -> DemoResult:
        """Full consent: verify, read every page, attest every statement, sign."""
        print("\n" + "=" * 60)
        print("SCENARIO: Full Consent")
        print("=" * 60)

        clock, delivery, workflow = self._new_workflow()
        notes = []

        print(f"\n[STEP 1] Identity verification ({format_datetime(clock.now())})")
        workflow.sequencer.navigate(Stage.VERIFY_IDENTITY)
        self._show("Send code", workflow.identity.send_challenge(DEMO_PATIENT.email))
        clock.advance(25)
        self._show("Verify code", workflow.identity.verify_code(delivery.last_code))

        print(f"\n[STEP 2] Document reading ({format_datetime(clock.now())})")
        workflow.sequencer.navigate(Stage.READ_DOCUMENT)
        document = workflow.document
        while not document.state.completed:
            page = document.state.current_page
            clock.advance(document.minimum_dwell(page) + 3)
            document.report_scroll(100)
            document.advance()
        progress = document.state
        print(f"  Pages read: {len(progress.pages_read)}/{progress.total_pages}")
        print(f"  Total reading time: {progress.total_reading_time}s")

        print(f"\n[STEP 3] Comprehension checklist ({format_datetime(clock.now())})")
        workflow.sequencer.navigate(Stage.COMPREHENSION_CHECKLIST)
        checklist = workflow.checklist
        for item in checklist.state.items:
            checklist.play_audio(item.id)
            clock.advance(checklist.player.duration_for(item))
            checklist.start_recording(item.id)
            clock.advance(8)
            checklist.stop_recording(item.id)
            outcome = checklist.accept_clip(item.id)
            print(f"  [{item.id}] {item.statement[:48]}... {outcome.message}")

        print(f"\n[STEP 4] Signature ({format_datetime(clock.now())})")
        workflow.sequencer.navigate(Stage.SIGN)
        signature = workflow.signature
        signature.mark_stroke([(12.0, 40.0), (60.5, 22.0), (110.0, 48.25)])
        signature.set_acknowledgement("consent", True)
        signature.set_acknowledgement("terms", True)
        self._show("Submit", signature.submit())
        clock.advance(self.settings.submission_latency_seconds)
        print(f"  Submitted: {signature.state.submitted}")

        workflow.sequencer.navigate(Stage.COMPLETE)
        export = build_completion_export(workflow.session, exported_at=clock.now())
        export_file = self.output_dir / f"{export.reference_number}.json"
        export_file.write_text(export.model_dump_json(indent=2))

        print(f"\n[COMPLETE] Reference number: {export.reference_number}")
        print(f"  Session duration: {export.audit.total_duration_seconds}s")
        print(f"  Content hash: {export.content_hash}")
        print(f"[ARTIFACT] Completion export: {export_file}")

        success = workflow.session.signature.submitted and verify_export(export)
        notes.append(f"Audit steps: {', '.join(step.name for step in export.audit.steps)}")
        return DemoResult(
            scenario="happy",
            success=success,
            artifacts=[str(export_file)],
            notes=notes,
        )

    def run_lockout(self) -> DemoResult:
        """Wrong codes until the challenge locks, then recovery with a new code."""
        print("\n" + "=" * 60)
        print("SCENARIO: Verification Lockout")
        print("=" * 60)

        clock, delivery, workflow = self._new_workflow()
        identity = workflow.identity
        workflow.sequencer.navigate(Stage.VERIFY_IDENTITY)

        print("\n[STEP 1] Three incorrect codes")
        identity.send_challenge(DEMO_PATIENT.email)
        for _ in range(self.settings.otp_max_attempts):
            self._show("Verify 000000", identity.verify_code(self.settings.otp_reject_sentinel))
        print(f"  Status: {identity.state.status.value}")

        print("\n[STEP 2] Resend after the cooldown")
        self._show("Resend (immediately)", identity.resend())
        clock.advance(self.settings.otp_resend_cooldown_seconds)
        self._show("Resend (after cooldown)", identity.resend())
        self._show("Verify new code", identity.verify_code(delivery.last_code))

        return DemoResult(
            scenario="lockout",
            success=identity.state.verified,
            notes=[f"Challenges sent: {identity.state.challenges_sent}"],
        )

    def run_shortcuts(self) -> DemoResult:
        """Attempts to skip ahead are refused by the stage and page gates."""
        print("\n" + "=" * 60)
        print("SCENARIO: Gate Enforcement")
        print("=" * 60)

        clock, delivery, workflow = self._new_workflow()
        refusals = []

        print("\n[STEP 1] Jump straight to signing")
        outcome = workflow.sequencer.navigate(Stage.SIGN)
        self._show("Navigate to sign", outcome)
        refusals.append(not outcome.allowed)

        workflow.sequencer.navigate(Stage.VERIFY_IDENTITY)
        workflow.identity.send_challenge(DEMO_PATIENT.email)
        workflow.identity.verify_code(delivery.last_code)
        workflow.sequencer.navigate(Stage.READ_DOCUMENT)

        print("\n[STEP 2] Advance a page after 5 seconds")
        clock.advance(5)
        outcome = workflow.document.advance()
        self._show("Advance", outcome)
        refusals.append(not outcome.allowed)

        print("\n[STEP 3] Advance without scrolling to the bottom")
        clock.advance(15)
        outcome = workflow.document.advance()
        self._show("Advance", outcome)
        refusals.append(not outcome.allowed)

        return DemoResult(scenario="shortcuts", success=all(refusals))

    def run_all_scenarios(self) -> list[DemoResult]:
        """Run every demo scenario."""
        return [self.run_happy_path(), self.run_lockout(), self.run_shortcuts()]

    def export_summary(self, results: list[DemoResult]) -> str:
        """Write a summary of the demo runs."""
        summary_file = self.output_dir / "consent_demo_summary.json"
        summary: dict[str, Any] = {
            "protocol_id": self.protocol.id,
            "protocol_hash": self.protocol.content_hash,
            "scenarios_run": len(results),
            "all_passed": all(r.success for r in results),
            "scenarios": [
                {
                    "name": r.scenario,
                    "success": r.success,
                    "artifacts": r.artifacts,
                    "notes": r.notes,
                }
                for r in results
            ],
        }
        summary_file.write_text(json.dumps(summary, indent=2))
        print(f"\n[SUMMARY] Exported to: {summary_file}")
        return str(summary_file)


def main():
    """Main entry point for the consent demo runner."""
    parser = argparse.ArgumentParser(description="Consent Walkthrough Demo")
    parser.add_argument(
        "scenario",
        choices=["happy", "lockout", "shortcuts", "all"],
        help="Which scenario to run",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("consent_evidence"),
        help="Output directory for completion exports",
    )
    parser.add_argument(
        "--protocol",
        default="cardio-2024-01.yaml",
        help="Bundled protocol file to run against",
    )

    args = parser.parse_args()
    setup_logging("WARNING")
    runner = ConsentDemoRunner(output_dir=args.output_dir, protocol_file=args.protocol)

    scenarios = {
        "happy": runner.run_happy_path,
        "lockout": runner.run_lockout,
        "shortcuts": runner.run_shortcuts,
    }
    if args.scenario == "all":
        results = runner.run_all_scenarios()
    else:
        results = [scenarios[args.scenario]()]

    summary = runner.export_summary(results)

    print("\n" + "=" * 60)
    print("DEMO COMPLETE")
    print("=" * 60)
    print(f"Scenarios run: {len(results)}")
    print(f"All passed: {all(r.success for r in results)}")
    print(f"Summary: {summary}")


if __name__ == "__main__":
    main()
