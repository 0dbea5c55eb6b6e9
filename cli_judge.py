import sys
from pathlib import Path

from ai_judge import services
from ai_judge.cache import JudgmentCache
from ai_judge.config import Settings
from ai_judge.errors import ConfigurationError, JudgeError
from ai_judge.generators import build_generator
from ai_judge.judge import JudgmentProtocol
from ai_judge.models import SideInput
from ai_judge.store import CaseStore

# Case metadata
CASE_TYPE = "Civil"
JURISDICTION = "INDIA"
SIDE_A_SUMMARY = "Loan of $5000 not repaid"
SIDE_B_SUMMARY = "It was a gift"

# Optional supporting documents
SIDE_A_FILE = Path("uploads/side_a_loan_agreement.pdf")
SIDE_B_FILE = Path("uploads/side_b_messages.txt")


def get_documents(path: Path):
    if not path.exists():
        print(f"Document {path} does not exist, continuing without it.")
        return []
    return [services.extract_text_from_file(path)]


def print_judgment(title, judgment):
    print(f"\n=== {title} (version {judgment.version}) ===")
    print(f"Verdict: {judgment.verdict}")
    print(f"Reasoning: {judgment.reasoning}")
    if judgment.legal_basis:
        print("Legal basis: " + "; ".join(judgment.legal_basis))
    print(f"Confidence: {judgment.confidence}%\n")


def main():
    print("=== AI Judge CLI ===\n")

    settings = Settings.from_env()
    try:
        generator = build_generator(settings)
    except ConfigurationError as e:
        print(f"Configuration error: {e}")
        return 1

    store = CaseStore(settings.database_url, max_arguments=settings.max_arguments)
    store.create_tables()
    protocol = JudgmentProtocol(store, JudgmentCache(settings.redis_url), generator, settings)

    try:
        case_id = store.create_case(
            CASE_TYPE,
            JURISDICTION,
            SideInput(summary=SIDE_A_SUMMARY, documents=get_documents(SIDE_A_FILE)),
            SideInput(summary=SIDE_B_SUMMARY, documents=get_documents(SIDE_B_FILE)),
        )
        print(f"Case created: {case_id}\nGenerating tentative judgment...")
        print_judgment("Tentative Judgment", protocol.generate_judgment(case_id))

        remaining = settings.max_arguments
        while remaining > 0:
            side = input(f"Argument side (A/B, empty to finish) [{remaining} left]: ").strip().upper()
            if not side:
                break
            if side not in ("A", "B"):
                print("Side must be A or B.")
                continue
            text = input(f"Side {side} argument: ").strip()
            if not text:
                continue
            outcome = protocol.submit_argument(case_id, side, text)
            print(f"\n[JUDGE] {outcome.response}")
            if outcome.reconsidered:
                print(f"Reconsidered: {outcome.updated_reasoning}")
            print(f"Strengthens: {outcome.strengthens or '-'} | Weakens: {outcome.weakens or '-'} | "
                  f"Confidence: {outcome.confidence}%\n")
            remaining = outcome.remaining_arguments

        print("Generating final verdict...")
        print_judgment("Final Verdict", protocol.generate_final_verdict(case_id))
    except JudgeError as e:
        print(f"Error ({e.kind}): {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
