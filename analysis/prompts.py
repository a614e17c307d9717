"""
Prompts for Delta-4 opportunity analysis.

These encode what "a software opportunity worth building" means: a 4+
improvement over what people do today, scored across ten dimensions.
Tuned for a founder looking for SaaS ideas in forum complaints.

No prompt engineering theater. Just clear instructions and a strict
JSON contract. The overall score is never asked for: it is computed
locally from the sub-scores.
"""

# ──────────────────────────────────────────────
# SHARED BLOCKS
# ──────────────────────────────────────────────

DELTA4_OVERVIEW = """\
Delta 4 theory: a product succeeds when it is at least 4 points better than
the current way of doing things across these dimensions (each 0-10):
1. speed: how much faster is the solution?
2. convenience: how much easier to use?
3. trust: how much more trustworthy?
4. price: how much more affordable?
5. status: how much more prestigious?
6. predictability: how much more reliable?
7. uiUx: how much better is the user experience?
8. easeOfUse: how much simpler to learn?
9. legalFriction: how much less regulatory complexity?
10. emotionalComfort: how much more peace of mind?

Scoring guide: 0-2 minimal, 3-4 moderate, 5-6 significant, 7-8 major,
9-10 revolutionary improvement.
"""

REQUIREMENTS = """\
Rules:
- Only SOFTWARE opportunities (SaaS, web app, mobile app, API, platform) for
  digital customers, scalable through code, with recurring revenue potential.
- Exclude hardware, physical products, pure consulting, one-time services.
- Reasoning must reference the post content. No generic filler.
- Compare the makeshift solution (what people do today: manual steps, hacks,
  time and money spent) with the ideal software solution, scoring both.
- Categorize across ALL category fields using context clues.
- Judge market validation from engagement, how often the problem recurs,
  who pays, willingness-to-pay language and competitors mentioned.
- If this is not a real opportunity, say so: isOpportunity=false with reasons.
"""

OUTPUT_SCHEMA = """\
Respond with ONLY a JSON object, no markdown, no commentary:
{
  "isOpportunity": true | false,
  "confidence": 0.0-1.0,
  "reasons": ["why not, when isOpportunity is false"],
  "opportunity": {
    "title": "short product-style title",
    "description": "the problem and who has it",
    "currentSolution": "what people do today",
    "proposedSolution": "what the software does",
    "marketContext": "...",
    "implementationNotes": "...",
    "delta4Scores": {"speed": 0-10, "convenience": 0-10, "trust": 0-10, "price": 0-10,
                     "status": 0-10, "predictability": 0-10, "uiUx": 0-10,
                     "easeOfUse": 0-10, "legalFriction": 0-10, "emotionalComfort": 0-10},
    "reasoning": {"speed": "...", "convenience": "...", ... one string per dimension},
    "marketSize": "Small" | "Medium" | "Large" | "Unknown",
    "complexity": "Low" | "Medium" | "High",
    "successProbability": "Low" | "Medium" | "High",
    "categories": {
      "businessType": "...", "businessModel": "...", "revenueModel": "...",
      "pricingModel": "...", "platform": "...", "mobileSupport": "...",
      "deploymentType": "...", "developmentType": "...", "targetAudience": "...",
      "userType": "...", "technicalLevel": "...", "ageGroup": "...",
      "geography": "...", "marketType": "...", "economicLevel": "...",
      "industryVertical": "...", "niche": "...", "developmentComplexity": "...",
      "teamSize": "...", "capitalRequirement": "...", "developmentTime": "...",
      "marketSizeCategory": "...", "competitionLevel": "...", "marketTrend": "...",
      "growthPotential": "...", "acquisitionStrategy": "...", "scalabilityType": "..."
    },
    "marketValidation": {
      "marketValidationScore": 0-10,
      "engagementLevel": "Low" | "Medium" | "High" | "Unknown",
      "problemFrequency": "Rare" | "Occasional" | "Frequent" | "Very Frequent" | "Unknown",
      "customerType": "Individual" | "Business" | "Both" | "Unknown",
      "paymentWillingness": "Low" | "Medium" | "High" | "Unknown",
      "competitiveAnalysis": "No Competition" | "Low Competition" | "Medium Competition" | "High Competition" | "Unknown",
      "validationTier": "Tier 1 (Build Now)" | "Tier 2 (Validate Further)" | "Tier 3 (Monitor)" | "Unknown"
    },
    "deltaComparison": {
      "makeshiftDelta4": {same ten keys, 0-10},
      "softwareDelta4": {same ten keys, 0-10},
      "biggestImprovements": ["..."],
      "reasonsForSoftware": ["..."]
    }
  }
}
Omit "opportunity" when isOpportunity is false.
"""

# ──────────────────────────────────────────────
# CHANNEL HEURISTICS
# ──────────────────────────────────────────────
# Keyed by channel name (case-insensitive). Unknown channels get GENERIC_HEURISTICS.

CHANNEL_HEURISTICS = {
    "promptengineering": """\
r/PromptEngineering:
- Pain indicators: "How do I prompt ChatGPT to...", "Anyone found a prompt for X?",
  "What's the best way to automate Y?"
- Look for: repeated manual prompting that could be automated, complex prompt
  workflows, industry-specific prompt packs, prompt versioning/testing,
  multi-LLM compatibility.
- Ask: can this be productized and solved 4x better than manual prompting?
  Are people hacking around limitations?
""",
    "startups": """\
r/startups:
- Pain indicators: "How to validate...", "Struggling with...", "Need help with...",
  "Built X but having trouble with Y".
- Look for: validation problems, operational drag (hiring, accounting, legal),
  growth bottlenecks, scaling and integration issues.
- Common shapes: B2B SaaS, marketplaces, productivity, analytics.
""",
    "entrepreneur": """\
r/entrepreneur:
- Pain indicators: "How do I start...", "What's the best way to...",
  "I'm having trouble with...", "Has anyone tried...".
- Look for: process automation, market research, financial management,
  CRM, legal and compliance automation.
- Common shapes: systematized services, B2B tools, education, marketplaces.
""",
    "programming": """\
r/programming:
- Pain indicators: "How to debug...", "Best practices for...",
  "Tool recommendations for...", "Anyone know a good way to...".
- Look for: dev workflow friction, code quality and testing, documentation,
  deployment automation, skill development.
- Common shapes: developer tools, DevOps, learning platforms, code generation.
""",
    "webdev": """\
r/webdev:
- Pain indicators: "How do I build...", "Best framework for...",
  "Performance issues with...", "Client wants...".
- Look for: site building and hosting, performance tooling, client management,
  design/UX tooling, e-commerce and payments.
- Common shapes: website builders and CMS, frameworks, agency tools, monitoring.
""",
    "smallbusiness": """\
r/smallbusiness:
- Pain indicators: "How to manage...", "Best software for...",
  "Struggling with cash flow...", "Looking for affordable...".
- Look for: accounting, CRM, inventory, marketing, HR and payroll.
- Common shapes: business tools, marketing, operations (POS, scheduling), payments.
""",
    "legaladvice": """\
r/legaladvice:
- Pain indicators: "Do I need a lawyer for...", "What are my rights...",
  "How to file...", "Contract question...".
- Look for: document automation, self-service legal guidance, lawyer matching,
  compliance monitoring, legal research.
- Common shapes: LegalTech, compliance, DIY legal forms, contract management.
""",
    "healthcare": """\
r/healthcare:
- Pain indicators: "How to improve patient...", "EHR system issues...",
  "Billing and coding...", "Staff scheduling...".
- Look for: EHR optimization, patient communication, billing and coding,
  analytics and reporting, telemedicine.
- Common shapes: HealthTech, operations, patient engagement, outcomes analytics.
""",
}

GENERIC_HEURISTICS = """\
General:
- Pain indicators: "How do I...", "Struggling with...", "Need help with...",
  "Looking for a better way to...", "Anyone know how to...".
- Look for: process automation, information management, collaboration issues,
  decision bottlenecks, repetitive tasks.
- Keep it only if demand is clear, a 4x improvement is plausible, the problem
  repeats, and it is technically feasible.
"""


def heuristics_for(channel: str) -> str:
    return CHANNEL_HEURISTICS.get((channel or "").lower(), GENERIC_HEURISTICS)


# ──────────────────────────────────────────────
# SINGLE-ITEM ANALYSIS
# ──────────────────────────────────────────────

ANALYSIS_SYSTEM = f"""\
You are a business analyst who finds software opportunities in forum posts
using Delta 4 theory.

{DELTA4_OVERVIEW}
{REQUIREMENTS}
{OUTPUT_SCHEMA}"""

ANALYSIS_USER = """\
Channel heuristics:
{heuristics}

Post:
- Title: {title}
- Content: {body}
- Channel: r/{channel}
- Author: {author}
- Score: {score}
- Comments: {num_comments}

Work through it: identify the core problem, describe the makeshift solution,
design the software solution, score both on Delta 4, assess market validation,
categorize, then decide. Output the JSON object only.
"""

# ──────────────────────────────────────────────
# BATCH ANALYSIS
# ──────────────────────────────────────────────

BATCH_SYSTEM = f"""\
You are a business analyst who finds software opportunities in forum posts
using Delta 4 theory. You will analyze several posts at once.

{DELTA4_OVERVIEW}
{REQUIREMENTS}
Each post must get its own analysis object in the format below.
{OUTPUT_SCHEMA}"""

BATCH_USER = """\
Analyze these {count} posts. Return ONLY a JSON array with EXACTLY {count}
objects in the same order as the posts. Each object must also carry the
post's "id" exactly as given.

{posts}
"""

BATCH_POST = """\
=== POST id={id} ===
Channel heuristics:
{heuristics}
- Title: {title}
- Content: {body}
- Channel: r/{channel}
- Author: {author}
- Score: {score}
- Comments: {num_comments}
"""

# ──────────────────────────────────────────────
# REPAIR
# ──────────────────────────────────────────────

REPAIR_USER = """\
Your previous response could not be used.

The original request was:

{request}

Problems found in your response:
{errors}

Your previous response:
{raw}

Fix every problem listed, using the post above as the source of truth.

Return ONLY the corrected JSON, following the required format exactly.
No markdown fences, no commentary.
"""
