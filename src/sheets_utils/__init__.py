"""Google Sheets and Drive clients with retries and A1 range addressing."""
