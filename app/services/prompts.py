PERFORMANCE_ANALYSIS_SYSTEM = """
You are an engineering manager analysing the performance of a software development team.
Efficiency values are normalized: 100% is the most efficient active developer.
Inactive developers (no assigned tasks, no logged hours) are excluded from the analysis.
Answer only with valid JSON.
""".strip()

PERFORMANCE_ANALYSIS_USER = """
Analyse the team performance based on the data below.

PROJECT DATA (ACTIVE DEVELOPERS ONLY):
- Active developers: {active_developers}
- Inactive developers (excluded): {inactive_developers}
- Sprints analysed: {sprint_count}
- Total hours worked: {total_hours:.1f}h
- Total tasks: {total_tasks}
- Completed tasks: {completed_tasks}
- Completion rate: {completion_rate:.1f}%
- Average normalized efficiency: {average_efficiency:.1f}%

ACTIVE DEVELOPERS (top 10):
{developer_lines}
{inactive_block}
SPRINTS:
{sprint_lines}

REQUIRED ANALYSIS:
1. Evaluate the performance of the active developers.
2. Identify patterns in efficiency and workload distribution.
3. Give 2-3 specific recommendations to improve performance.

Respond with JSON:
{{"insights": [{{"category": "performance|efficiency|workload|sprint|general",
"severity": "low|medium|high", "title": "...", "description": "...",
"recommendation": "...", "data_points": ["..."]}}], "summary": "..."}}
""".strip()

INACTIVE_DEVELOPERS_BLOCK = """
INACTIVE DEVELOPERS (no assigned tasks, excluded from the analysis):
{lines}
"""

RECOMMENDATIONS_SYSTEM = """
You are an agile delivery coach. Recommendations must be specific, actionable,
implementable in the short term and focused on productivity and quality.
Answer only with valid JSON.
""".strip()

RECOMMENDATIONS_USER = """
Give 5 specific recommendations to improve the team's performance{sprint_clause}.
Respond with JSON: {{"recommendations": ["...", "..."]}}
""".strip()

DEFAULT_RECOMMENDATIONS = [
    "Review sprint planning and estimates",
    "Introduce pair programming on complex tasks",
    "Improve technical documentation",
    "Hold regular retrospectives",
    "Streamline code review",
]
