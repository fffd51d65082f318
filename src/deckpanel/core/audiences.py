"""
Audience segment reference table.
Read-only data shared by the server (prompt construction) and the client (selection).
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional


@dataclass(frozen=True)
class AudienceSegment:
    """
    Declarative audience segment definition.
    """
    id: str
    label: str
    evidence_expectations: str
    communication_style: str
    singular: bool = False  # usually one person in a real organization

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "evidenceExpectations": self.evidence_expectations,
            "communicationStyle": self.communication_style,
            "singular": self.singular,
        }


BOARD = AudienceSegment(
    id="board",
    label="Board/Advisory Group",
    evidence_expectations=(
        "Long-term value creation metrics, fiduciary risk assessments, regulatory compliance "
        "documentation, peer company comparisons, capital efficiency analyses"
    ),
    communication_style=(
        "Highly formal, governance-focused vocabulary, emphasis on oversight and risk mitigation, "
        "assumes deep business sophistication, balances detail with brevity, confident but "
        "accountable tone, focus on strategic choices and their trade-offs"
    ),
)

C_LEVEL = AudienceSegment(
    id="c-level",
    label="C-level Executives",
    evidence_expectations=(
        "Strategic impact metrics (market share, competitive positioning, revenue/profit influence), "
        "board-level KPIs and trend analysis, industry benchmark comparisons with peer companies, "
        "regulatory/compliance implications, organizational risk assessments, M&A or strategic "
        "partnership implications, long-term value creation models"
    ),
    communication_style=(
        "Executive brevity, very high formality with strategic focus, leads with business impact "
        "not features, speaks in outcomes and strategic implications (growth, margin, risk, "
        "competitive advantage), names trade-offs and opportunity costs explicitly, fluent in "
        "financial and strategic terminology, expects a clear recommendation with supporting logic"
    ),
)

CLIENT = AudienceSegment(
    id="client",
    label="Client",
    evidence_expectations=(
        "ROI calculations specific to their business, case studies from similar companies or "
        "industries, implementation timeline and risk mitigation plans, client testimonials and references"
    ),
    communication_style=(
        "Professional but approachable, formality adapted to the client's culture, focus on their "
        "specific problem and outcomes, consultative partner tone rather than vendor tone, raises "
        "concerns proactively, balances confidence with listening"
    ),
)

DEPARTMENT_HEAD = AudienceSegment(
    id="department-head",
    label="Department Head",
    evidence_expectations=(
        "Operational efficiency metrics, team productivity data, resource utilization reports, "
        "internal peer department examples, implementation feasibility assessments"
    ),
    communication_style=(
        "Professional with operational focus, moderate formality, balances strategic context with "
        "tactical detail, aware of resource constraints and competing priorities, collaborative "
        "peer-level tone, specific and actionable"
    ),
    singular=True,
)

DIRECT_MANAGER = AudienceSegment(
    id="direct-manager",
    label="Direct Manager",
    evidence_expectations=(
        "Team performance metrics, individual workload impact assessments, delivery track record, "
        "specific execution timelines and task breakdowns"
    ),
    communication_style=(
        "Direct and conversational, low-to-moderate formality, focus on immediate work implications, "
        "collaborative tone, specific about timeline and dependencies"
    ),
    singular=True,
)

EXTERNAL_PARTNERS = AudienceSegment(
    id="external-partners",
    label="External Partners",
    evidence_expectations=(
        "Partnership case studies with measurable mutual outcomes, complementary capability "
        "demonstrations, joint market opportunity data, existing partner testimonials"
    ),
    communication_style=(
        "Professional and collaborative, moderate-to-high formality, emphasizes shared value and "
        "aligned interests, equal-footing tone, focus on co-creation"
    ),
)

GENERAL_PUBLIC = AudienceSegment(
    id="general-public",
    label="General Public",
    evidence_expectations=(
        "Real-world everyday examples and analogies, accessible statistics with clear sourcing, "
        "human interest stories and relatable scenarios, visual demonstrations and simplified models, "
        "consumer testimonials and mainstream media references, basic cost-benefit comparisons in "
        "everyday terms, widely recognized public facts"
    ),
    communication_style=(
        "Conversational and accessible with no jargon, low formality with warmth, explains technical "
        "concepts through familiar comparisons, focuses on what this means for the listener, assumes "
        "no prior knowledge, uses storytelling and concrete examples, acknowledges concerns, simple "
        "without being misleading"
    ),
)

INVESTORS = AudienceSegment(
    id="investors",
    label="Investors",
    evidence_expectations=(
        "Traction metrics (user growth, revenue, retention), market size data with credible sources, "
        "competitive differentiation proof, team credentials and relevant track record, early "
        "customer testimonials or LOIs"
    ),
    communication_style=(
        "Confident but data-driven, high formality, balances vision with proof points, uses "
        "startup/VC terminology (TAM/SAM/SOM, burn rate, unit economics), emphasizes scalability "
        "and market timing, addresses risks directly, focus on asymmetric upside"
    ),
)

POTENTIAL_CUSTOMERS = AudienceSegment(
    id="potential-customers",
    label="Potential Customers",
    evidence_expectations=(
        "Clear ROI and business impact metrics, relevant customer success stories, before/after "
        "comparisons, quantified pain-to-value translation, competitive differentiation, "
        "implementation simplicity and time-to-value estimates, risk reduction assurances, "
        "pricing and packaging logic when appropriate"
    ),
    communication_style=(
        "Persuasive but not hypey, outcome-focused, minimal jargon, anchored on the buyer's goals "
        "rather than product features, credibility over excitement, handles objections implicitly "
        "(switching cost, trust, effort), narrative flow of problem, stakes, solution, proof, next step"
    ),
)

PROJECT_STAKEHOLDERS = AudienceSegment(
    id="project-stakeholders",
    label="Project Stakeholders",
    evidence_expectations=(
        "Milestone achievements and timeline adherence, resource utilization reports, risk and issue "
        "logs with mitigation status, dependency tracking and blocker resolution, deliverable quality metrics"
    ),
    communication_style=(
        "Clear and transparent, moderate formality, proactive about problems and risks, specific "
        "about dependencies and needs, collaborative, action-oriented on next steps"
    ),
)

SENIOR_LEADERSHIP = AudienceSegment(
    id="senior-leadership",
    label="Senior Leadership",
    evidence_expectations=(
        "Revenue and market share data, ROI analyses with clear financial impact, competitive "
        "positioning reports, industry benchmarks from credible sources"
    ),
    communication_style=(
        "Strategic vocabulary, high formality, minimal technical detail, confident and authoritative, "
        "emphasis on implications over mechanics, assumes business acumen"
    ),
)

TEAM = AudienceSegment(
    id="team",
    label="Team",
    evidence_expectations=(
        "Shared work context and recent team accomplishments, specific task examples and work "
        "artifacts, peer experiences and lessons learned, manager endorsement or team consensus"
    ),
    communication_style=(
        "Casual and conversational, low formality, peer-level and collaborative, focus on practical "
        "impact to daily work, authentic and direct"
    ),
)

TRAINEES = AudienceSegment(
    id="trainees",
    label="Trainees/New Hires",
    evidence_expectations=(
        "Step-by-step processes with clear rationale, internal documentation references, examples "
        "from recent projects with context, best practice frameworks with application guidance, "
        "common mistakes and how to avoid them, relevant policies and cultural norms, learning paths"
    ),
    communication_style=(
        "Supportive and educational, approachable without being patronizing, explains the why behind "
        "processes, normalizes questions, avoids overwhelming detail, defines internal terminology, "
        "encouraging tone that builds confidence"
    ),
)


ALL_SEGMENTS: Dict[str, AudienceSegment] = {
    segment.id: segment
    for segment in (
        BOARD,
        C_LEVEL,
        CLIENT,
        DEPARTMENT_HEAD,
        DIRECT_MANAGER,
        EXTERNAL_PARTNERS,
        GENERAL_PUBLIC,
        INVESTORS,
        POTENTIAL_CUSTOMERS,
        PROJECT_STAKEHOLDERS,
        SENIOR_LEADERSHIP,
        TEAM,
        TRAINEES,
    )
}


def get_segment(segment_id: str) -> Optional[AudienceSegment]:
    return ALL_SEGMENTS.get(segment_id)


def resolve_segments(category_ids: Iterable[str]) -> List[AudienceSegment]:
    """
    Map selected category ids to segments.
    Unknown ids are dropped, duplicates collapse, selection order is kept.
    """
    segments: List[AudienceSegment] = []
    seen = set()
    for category_id in category_ids:
        segment = ALL_SEGMENTS.get(category_id)
        if segment is None or segment.id in seen:
            continue
        seen.add(segment.id)
        segments.append(segment)
    return segments


def segment_for_persona(category_id: str, segments: List[AudienceSegment]) -> AudienceSegment:
    """
    Segment matching a persona's category, falling back to the first selected segment.
    """
    if not segments:
        raise ValueError("At least one audience segment is required")
    for segment in segments:
        if segment.id == category_id:
            return segment
    return segments[0]
