"""
Voice Survey service - Twilio webhooks, Airtable store, OpenAI completions.
"""
