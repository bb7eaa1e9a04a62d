"""Migration plan generation for a single placement recommendation."""

import structlog

from advisor.schemas.classification import WorkloadArchetype, WorkloadTrait
from advisor.schemas.migration_plan import (
    DowntimeEstimate,
    MigrationPlan,
    MigrationRisk,
    MigrationStep,
    MigrationStrategy,
    MigrationTool,
    PlanPhase,
    RiskMitigation,
    StrategyKey,
)
from advisor.schemas.recommendation import ComplexityLevel, Recommendation
from advisor.schemas.resource import CloudProvider

logger = structlog.get_logger()

MIGRATION_STRATEGIES: dict[StrategyKey, MigrationStrategy] = {
    StrategyKey.REHOST: MigrationStrategy(
        key=StrategyKey.REHOST,
        name="Rehost (Lift & Shift)",
        description="Move an application to a new host with minimal changes",
        best_for=["Virtual machines", "Simple web applications", "Legacy applications"],
        complexity="Low",
        risk="Low",
        timeframe="Fast",
        cost_savings="Minimal",
    ),
    StrategyKey.REPLATFORM: MigrationStrategy(
        key=StrategyKey.REPLATFORM,
        name="Replatform (Lift & Optimize)",
        description="Move to a new platform with some optimizations",
        best_for=["Applications needing minor optimizations", "Database migrations"],
        complexity="Medium",
        risk="Medium",
        timeframe="Medium",
        cost_savings="Moderate",
    ),
    StrategyKey.REFACTOR: MigrationStrategy(
        key=StrategyKey.REFACTOR,
        name="Refactor / Re-architect",
        description="Significantly change the application to better leverage cloud capabilities",
        best_for=[
            "Applications needing major optimizations",
            "Legacy applications that need modernization",
        ],
        complexity="High",
        risk="High",
        timeframe="Slow",
        cost_savings="High",
    ),
    StrategyKey.REPURCHASE: MigrationStrategy(
        key=StrategyKey.REPURCHASE,
        name="Repurchase (Drop & Shop)",
        description="Replace with a different product, typically SaaS",
        best_for=["Commodity applications", "CRM, Email, Collaboration tools"],
        complexity="Medium",
        risk="Medium",
        timeframe="Fast",
        cost_savings="Variable",
    ),
    StrategyKey.RETIRE: MigrationStrategy(
        key=StrategyKey.RETIRE,
        name="Retire",
        description="Decommission or remove applications that are no longer needed",
        best_for=["Redundant applications", "Low-value applications"],
        complexity="Low",
        risk="Low",
        timeframe="Fast",
        cost_savings="High",
    ),
    StrategyKey.RETAIN: MigrationStrategy(
        key=StrategyKey.RETAIN,
        name="Retain (Revisit)",
        description="Keep applications as-is with no changes",
        best_for=[
            "Critical applications with compliance requirements",
            "Applications recently upgraded",
        ],
        complexity="None",
        risk="None",
        timeframe="None",
        cost_savings="None",
    ),
}

_AZURE_MIGRATE_URL = "https://azure.microsoft.com/services/azure-migrate/"
_GCP_MIGRATION_CENTER_URL = "https://cloud.google.com/migration-center"
_AWS_MIGRATION_HUB_URL = "https://aws.amazon.com/migration-hub/"

# (source, target) -> provider tooling for that route
MIGRATION_TOOLS: dict[tuple[CloudProvider, CloudProvider], list[MigrationTool]] = {
    (CloudProvider.AWS, CloudProvider.AZURE): [
        MigrationTool(
            name="Azure Migrate",
            description="Azure's service for migrating from AWS to Azure",
            url=_AZURE_MIGRATE_URL,
            best_for=["EC2 to Azure VM", "RDS to Azure SQL"],
        ),
        MigrationTool(
            name="Azure Database Migration Service",
            description="Specialized service for migrating databases to Azure",
            url="https://azure.microsoft.com/services/database-migration/",
            best_for=["RDS to Azure SQL", "DynamoDB to Cosmos DB"],
        ),
    ],
    (CloudProvider.AWS, CloudProvider.GCP): [
        MigrationTool(
            name="Google Cloud Migration Center",
            description="GCP's central hub for migrations",
            url=_GCP_MIGRATION_CENTER_URL,
            best_for=["EC2 to Compute Engine", "S3 to Cloud Storage"],
        ),
        MigrationTool(
            name="Google Database Migration Service",
            description="Service for migrating databases to GCP",
            url="https://cloud.google.com/database-migration",
            best_for=["RDS to Cloud SQL", "Aurora to AlloyDB"],
        ),
    ],
    (CloudProvider.AZURE, CloudProvider.AWS): [
        MigrationTool(
            name="AWS Migration Hub",
            description="AWS's central hub for migrations",
            url=_AWS_MIGRATION_HUB_URL,
            best_for=["Azure VM to EC2", "Azure SQL to RDS"],
        ),
        MigrationTool(
            name="AWS Database Migration Service",
            description="Service for migrating databases to AWS",
            url="https://aws.amazon.com/dms/",
            best_for=["Azure SQL to RDS", "Cosmos DB to DynamoDB"],
        ),
    ],
    (CloudProvider.AZURE, CloudProvider.GCP): [
        MigrationTool(
            name="Google Cloud Migration Center",
            description="GCP's central hub for migrations",
            url=_GCP_MIGRATION_CENTER_URL,
            best_for=["Azure VM to Compute Engine", "Azure Storage to Cloud Storage"],
        ),
    ],
    (CloudProvider.GCP, CloudProvider.AWS): [
        MigrationTool(
            name="AWS Migration Hub",
            description="AWS's central hub for migrations",
            url=_AWS_MIGRATION_HUB_URL,
            best_for=["Compute Engine to EC2", "Cloud Storage to S3"],
        ),
    ],
    (CloudProvider.GCP, CloudProvider.AZURE): [
        MigrationTool(
            name="Azure Migrate",
            description="Azure's service for migrating to Azure",
            url=_AZURE_MIGRATE_URL,
            best_for=["Compute Engine to Azure VM", "Cloud SQL to Azure SQL"],
        ),
    ],
}

# strategy timeframe -> complexity level -> calendar estimate
TIMEFRAME_ESTIMATES: dict[str, dict[ComplexityLevel, str]] = {
    "Fast": {
        ComplexityLevel.LOW: "1-2 weeks",
        ComplexityLevel.MEDIUM: "2-4 weeks",
        ComplexityLevel.HIGH: "1-2 months",
    },
    "Medium": {
        ComplexityLevel.LOW: "1-2 months",
        ComplexityLevel.MEDIUM: "2-3 months",
        ComplexityLevel.HIGH: "3-6 months",
    },
    "Slow": {
        ComplexityLevel.LOW: "3-6 months",
        ComplexityLevel.MEDIUM: "6-9 months",
        ComplexityLevel.HIGH: "9-12 months",
    },
    "None": {
        ComplexityLevel.LOW: "N/A",
        ComplexityLevel.MEDIUM: "N/A",
        ComplexityLevel.HIGH: "N/A",
    },
}

_COMPLEXITY_RANK = {"None": 0, "Low": 1, "Medium": 2, "High": 3}

SAAS_TRAITS = (WorkloadTrait.EMAIL, WorkloadTrait.CRM, WorkloadTrait.COLLABORATION)

# Retained and retired workloads are not moved, so nothing is left to validate
NO_POST_MIGRATION = (StrategyKey.RETAIN, StrategyKey.RETIRE)

PLANNING_PHASE = [
    ("Detailed Assessment", "Perform a deep analysis of the application dependencies, architecture, and requirements"),
    ("Create Migration Plan", "Develop a detailed timeline, resource allocation, and technical migration plan"),
    ("Establish Success Criteria", "Define metrics and KPIs to measure migration success"),
]

POST_MIGRATION_PHASE = [
    ("Validation and Testing", "Perform thorough validation of the migrated system"),
    ("Performance Tuning", "Optimize performance in the new environment"),
    ("Monitoring Setup", "Implement monitoring and alerting"),
    ("Decommission Source", "Once stable, decommission the original resources"),
]

# strategy -> ordered (phase, [(step, description)]); "{target}" is the target provider
STRATEGY_PHASES: dict[StrategyKey, list[tuple[str, list[tuple[str, str]]]]] = {
    StrategyKey.REHOST: [
        ("Preparation", [
            ("Create Target Environment", "Set up the target environment in {target}"),
            ("Set Up Migration Tools", "Configure and test the selected migration tools"),
            ("Create Backup", "Create a complete backup of the source environment"),
        ]),
        ("Migration", [
            ("Test Migration", "Perform a test migration to validate the process"),
            ("Schedule Downtime", "Schedule and communicate the migration window"),
            ("Perform Migration", "Execute the migration process"),
            ("Verify Data Integrity", "Validate that all data has been migrated correctly"),
        ]),
    ],
    StrategyKey.REPLATFORM: [
        ("Preparation", [
            ("Identify Optimization Opportunities", "Determine specific optimizations to make during migration"),
            ("Create Target Environment", "Set up the optimized target environment in {target}"),
            ("Refine Data Migration Strategy", "Plan for data schema changes or transformations"),
        ]),
        ("Migration", [
            ("Implement Target Optimizations", "Apply the planned optimizations in the target environment"),
            ("Test Migration Process", "Validate the migration and optimization process"),
            ("Migrate Data with Transformations", "Execute data migration with necessary transformations"),
            ("Perform Application Migration", "Migrate the application components with optimizations"),
        ]),
    ],
    StrategyKey.REFACTOR: [
        ("Preparation", [
            ("Application Architecture Redesign", "Redesign the application architecture to better leverage cloud capabilities"),
            ("Code Refactoring Plan", "Develop a detailed plan for code changes required"),
            ("Data Model Redesign", "Optimize data models for the target platform"),
        ]),
        ("Development", [
            ("Develop Refactored Components", "Implement the architectural and code changes"),
            ("Set Up CI/CD Pipeline", "Establish continuous integration and deployment pipelines"),
            ("Develop Data Migration Scripts", "Create scripts for data transformation and migration"),
        ]),
        ("Migration", [
            ("Deploy Refactored Application", "Deploy the redesigned application to the target environment"),
            ("Migrate and Transform Data", "Execute data migration with transformations"),
            ("Parallel Running Period", "Run both old and new systems in parallel during transition"),
            ("Cutover to New System", "Gradually shift traffic to the new system"),
        ]),
    ],
    StrategyKey.REPURCHASE: [
        ("Preparation", [
            ("Vendor Selection", "Evaluate and select the replacement SaaS solution"),
            ("Feature Mapping", "Map current functionality to new solution capabilities"),
            ("Data Export Planning", "Plan how to extract data from the current system"),
        ]),
        ("Migration", [
            ("Configure New Solution", "Set up and configure the new SaaS solution"),
            ("Export and Transform Data", "Extract and transform data for the new system"),
            ("Import Data", "Import the transformed data into the new system"),
            ("User Training", "Train users on the new system"),
            ("Cutover to New System", "Switch users to the new solution"),
        ]),
    ],
    StrategyKey.RETIRE: [
        ("Preparation", [
            ("Data Archiving Plan", "Develop a plan to archive necessary data"),
            ("User Communication", "Communicate retirement plans to users"),
            ("Dependency Analysis", "Identify and plan for handling dependent systems"),
        ]),
        ("Execution", [
            ("Data Archiving", "Archive required data for retention"),
            ("Update Dependent Systems", "Modify systems that depend on the retiring application"),
            ("Decommission Application", "Shut down and remove the application"),
            ("Resource Cleanup", "Clean up and reclaim infrastructure resources"),
        ]),
    ],
    StrategyKey.RETAIN: [
        ("Documentation", [
            ("Document Decision Rationale", "Document reasons for retaining the current system"),
            ("Set Future Review Date", "Schedule a date to revisit the migration decision"),
        ]),
        ("Optimization", [
            ("Identify On-Premises Optimizations", "Look for ways to optimize the current deployment"),
            ("Implement Cost-Saving Measures", "Apply any possible cost optimizations in the current environment"),
        ]),
    ],
}

# (type, severity, description, mitigation)
COMMON_RISKS = [
    ("Data Loss Risk", "High", "Risk of data loss during migration",
     "Create full backups before migration and validate data integrity after transfer"),
    ("Downtime Impact", "Medium", "Service disruption during migration affecting users",
     "Schedule migration during low-traffic periods and communicate maintenance windows"),
]

STRATEGY_RISKS: dict[StrategyKey, list[tuple[str, str, str, str]]] = {
    StrategyKey.REHOST: [
        ("Performance Issues", "Medium", "Different infrastructure characteristics may affect performance",
         "Conduct performance testing and adjust resource allocations as needed"),
    ],
    StrategyKey.REPLATFORM: [
        ("Optimization Complications", "Medium", "Optimizations may introduce unexpected behaviors",
         "Test each optimization individually before full migration"),
        ("Data Transformation Errors", "High", "Errors in data schema changes or transformations",
         "Thoroughly test data migration scripts with sample data before full migration"),
    ],
    StrategyKey.REFACTOR: [
        ("Project Complexity", "High", "Increased scope and complexity may lead to delays or budget overruns",
         "Break the refactoring into smaller, manageable phases with clear milestones"),
        ("New Architectural Flaws", "Medium", "Redesigned architecture may introduce new issues",
         "Conduct thorough architecture reviews and testing before implementation"),
    ],
    StrategyKey.REPURCHASE: [
        ("Feature Parity Gaps", "High", "New solution may not have all features of the current system",
         "Conduct thorough feature mapping and gap analysis during vendor selection"),
        ("User Adoption Issues", "Medium", "Users may resist change to a new system",
         "Invest in comprehensive training and change management"),
    ],
    StrategyKey.RETIRE: [
        ("Unknown Dependencies", "High", "Undocumented systems may depend on the application being retired",
         "Perform thorough dependency analysis and monitor for issues during gradual shutdown"),
        ("Data Retention Compliance", "High", "Failing to retain required data may violate regulations",
         "Consult legal/compliance teams to ensure proper data archiving"),
    ],
    StrategyKey.RETAIN: [
        ("Opportunity Cost", "Medium", "Missing potential benefits of cloud migration",
         "Regularly reassess the decision and monitor changes in business needs"),
        ("Technical Debt", "Medium", "Continued accumulation of technical debt in legacy system",
         "Implement maintenance best practices and continue modernization where possible"),
    ],
}

DATABASE_RISK = (
    "Data Compatibility Issues", "High", "Database engine differences may cause compatibility problems",
    "Test with a subset of data first and address schema compatibility issues",
)
HIGH_AVAILABILITY_RISK = (
    "Availability Impact", "High", "Migration may affect high-availability requirements",
    "Implement a phased migration approach with fallback options",
)

# strategy -> (downtime for databases, strategies), (downtime otherwise, strategies)
DOWNTIME_ESTIMATES: dict[StrategyKey, tuple[tuple[str, list[str]], tuple[str, list[str]]]] = {
    StrategyKey.REHOST: (
        ("1-4 hours", [
            "Use database replication to minimize downtime",
            "Implement a blue-green deployment strategy",
        ]),
        ("30 minutes to 2 hours", [
            "Prepare everything in advance to minimize cutover time",
            "Use DNS switching for minimal user impact",
        ]),
    ),
    StrategyKey.REPLATFORM: (
        ("2-8 hours", [
            "Use database replication with schema transformation tools",
            "Consider a phased data migration approach",
        ]),
        ("1-4 hours", [
            "Implement a blue-green deployment strategy",
            "Use feature flags to gradually enable new functionality",
        ]),
    ),
}

FIXED_DOWNTIME: dict[StrategyKey, tuple[str, list[str]]] = {
    StrategyKey.REFACTOR: ("Variable (potentially minimal with proper implementation)", [
        "Implement a strangler pattern to gradually replace functionality",
        "Use traffic shifting to slowly transition to the new system",
        "Run systems in parallel during transition",
    ]),
    StrategyKey.REPURCHASE: ("4-24 hours (depending on data volume)", [
        "Pre-populate the new system before cutover",
        "Consider a phased rollout by user groups or features",
        "Plan for a weekend or off-hours cutover",
    ]),
    StrategyKey.RETIRE: ("Planned complete shutdown", [
        "Provide ample notice to users",
        "Gradually reduce functionality before full retirement",
    ]),
    StrategyKey.RETAIN: ("None", ["No downtime as no migration occurs"]),
}

HIGH_AVAILABILITY_DOWNTIME_STRATEGIES = [
    "Implement a zero-downtime migration pattern with failover",
    "Use load balancing to shift traffic gradually with no downtime",
]
NEAR_ZERO_SUFFIX = " (can be reduced to near-zero with additional effort)"


def _is_database(recommendation: Recommendation) -> bool:
    resource_type = recommendation.resource_type.lower()
    return (
        "db" in resource_type
        or "database" in resource_type
        or WorkloadArchetype.DATABASE in recommendation.classifications
    )


def _is_high_availability(recommendation: Recommendation) -> bool:
    return WorkloadTrait.HIGH_AVAILABILITY in recommendation.traits


class MigrationPlanner:
    """
    Turns a recommendation into a concrete migration plan.

    Planning is pure: the same recommendation always yields the same plan.
    """

    def generate_migration_plan(self, recommendation: Recommendation) -> MigrationPlan:
        """
        Build the full plan for one recommendation.

        Args:
            recommendation: Placement recommendation for a single resource

        Returns:
            Plan with strategy, tooling, timeframe, steps, risks and downtime
        """
        complexity = recommendation.migration_complexity.level
        strategy = self.determine_strategy(recommendation)
        risks, mitigations = self.assess_risks(recommendation, strategy.key)

        plan = MigrationPlan(
            resource_id=recommendation.resource_id,
            resource_type=recommendation.resource_type,
            current_provider=recommendation.current_provider,
            target_provider=recommendation.recommended_provider,
            estimated_savings=recommendation.estimated_savings,
            complexity_level=complexity,
            recommended_strategy=strategy,
            alternative_strategies=self.determine_alternative_strategies(strategy.key, complexity),
            migration_tooling=self.select_tooling(recommendation),
            estimated_timeframe=self.estimate_timeframe(strategy.timeframe, complexity),
            steps=self.generate_migration_steps(recommendation, strategy.key),
            risks=risks,
            mitigations=mitigations,
            downtime=self.estimate_downtime(recommendation, strategy.key),
        )

        logger.info(
            "migration_plan.generated",
            resource_id=plan.resource_id,
            strategy=strategy.key.value,
            target_provider=plan.target_provider.value,
        )
        return plan

    @staticmethod
    def determine_strategy(recommendation: Recommendation) -> MigrationStrategy:
        """
        Pick a strategy by applying override rules in order; later rules win.
        """
        complexity = recommendation.migration_complexity.level
        strategy = StrategyKey.REHOST

        if _is_database(recommendation):
            strategy = StrategyKey.REPLATFORM
        if complexity == ComplexityLevel.HIGH:
            strategy = StrategyKey.REFACTOR
        if recommendation.estimated_savings < 100 and complexity == ComplexityLevel.HIGH:
            strategy = StrategyKey.RETAIN
        if WorkloadTrait.OBSOLETE in recommendation.traits:
            strategy = StrategyKey.RETIRE
        if any(trait in recommendation.traits for trait in SAAS_TRAITS):
            strategy = StrategyKey.REPURCHASE

        return MIGRATION_STRATEGIES[strategy]

    @staticmethod
    def determine_alternative_strategies(
        primary: StrategyKey, complexity: ComplexityLevel
    ) -> list[MigrationStrategy]:
        """Two other strategies closest in complexity to the workload, catalogue order on ties."""
        target_rank = _COMPLEXITY_RANK[complexity.value]
        candidates = [s for s in MIGRATION_STRATEGIES.values() if s.key != primary]
        # sorted() is stable, so equal distances keep catalogue order
        ranked = sorted(candidates, key=lambda s: abs(_COMPLEXITY_RANK[s.complexity] - target_rank))
        return ranked[:2]

    @staticmethod
    def select_tooling(recommendation: Recommendation) -> list[MigrationTool]:
        """Route tools whose best-for list names this resource type."""
        tools = MIGRATION_TOOLS.get(
            (recommendation.current_provider, recommendation.recommended_provider), []
        )
        resource_type = recommendation.resource_type.lower()
        return [
            tool
            for tool in tools
            if any(entry.lower().split(" ")[0] in resource_type for entry in tool.best_for)
        ]

    @staticmethod
    def estimate_timeframe(strategy_timeframe: str, complexity: ComplexityLevel) -> str:
        return TIMEFRAME_ESTIMATES[strategy_timeframe][complexity]

    @staticmethod
    def generate_migration_steps(
        recommendation: Recommendation, strategy: StrategyKey
    ) -> list[PlanPhase]:
        target = recommendation.recommended_provider.value.upper()

        def build(phase: str, steps: list[tuple[str, str]]) -> PlanPhase:
            return PlanPhase(
                phase=phase,
                steps=[
                    MigrationStep(name=name, description=description.format(target=target))
                    for name, description in steps
                ],
            )

        phases = [build("Planning", PLANNING_PHASE)]
        phases.extend(build(phase, steps) for phase, steps in STRATEGY_PHASES[strategy])
        if strategy not in NO_POST_MIGRATION:
            phases.append(build("Post-Migration", POST_MIGRATION_PHASE))
        return phases

    @staticmethod
    def assess_risks(
        recommendation: Recommendation, strategy: StrategyKey
    ) -> tuple[list[MigrationRisk], list[RiskMitigation]]:
        entries = list(COMMON_RISKS) + STRATEGY_RISKS[strategy]
        if _is_database(recommendation):
            entries.append(DATABASE_RISK)
        if _is_high_availability(recommendation):
            entries.append(HIGH_AVAILABILITY_RISK)

        risks = [
            MigrationRisk(type=kind, severity=severity, description=description)
            for kind, severity, description, _ in entries
        ]
        mitigations = [RiskMitigation(risk=kind, action=action) for kind, _, _, action in entries]
        return risks, mitigations

    @staticmethod
    def estimate_downtime(recommendation: Recommendation, strategy: StrategyKey) -> DowntimeEstimate:
        """
        Estimate downtime for the chosen strategy.

        High-availability workloads get zero-downtime suggestions, and the
        estimate is annotated unless the strategy already minimizes downtime.
        """
        if strategy in DOWNTIME_ESTIMATES:
            database_case, default_case = DOWNTIME_ESTIMATES[strategy]
            estimated, suggestions = database_case if _is_database(recommendation) else default_case
        else:
            estimated, suggestions = FIXED_DOWNTIME[strategy]
        suggestions = list(suggestions)

        if _is_high_availability(recommendation) and estimated != "None":
            suggestions.extend(HIGH_AVAILABILITY_DOWNTIME_STRATEGIES)
            if strategy not in (StrategyKey.REFACTOR, StrategyKey.REPURCHASE):
                estimated += NEAR_ZERO_SUFFIX

        return DowntimeEstimate(
            estimated=estimated,
            minimization_strategies=list(dict.fromkeys(suggestions)),
        )
