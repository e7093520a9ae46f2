class CampaignStoreError(Exception):
    """Base exception for all campaign_store errors"""
    pass

class ConfigError(CampaignStoreError):
    """Invalid or inconsistent settings file or field registry"""
    pass

class FilterSpecError(CampaignStoreError):
    """
    Filter specification doesn't match the field registry
    unknown field, value shape not allowed for the field kind, etc
    """
    pass
