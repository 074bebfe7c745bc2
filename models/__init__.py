# Database Models
from .workflow_execution import WorkflowExecution
from .brand import Brand
from .seo_campaign import SeoCampaign
from .selected_topic import SelectedTopic
from .blog_post import BlogPost
from .api_token_usage import ApiTokenUsage
from .lobstr_run import LobstrRun
from .scraping_run import ScrapingRun
from .business_lead import BusinessLead
from .squid_lease import SquidLease

__all__ = [
    "WorkflowExecution",
    "Brand",
    "SeoCampaign",
    "SelectedTopic",
    "BlogPost",
    "ApiTokenUsage",
    "LobstrRun",
    "ScrapingRun",
    "BusinessLead",
    "SquidLease",
]
