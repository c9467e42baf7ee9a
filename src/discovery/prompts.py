"""Prompt templates for the generative model."""

RANKING_PROMPT = """You are an expert shopping assistant. Analyze the products available in shops near the user and recommend the best options. The user is searching for "{query}".

Available products:
{candidates}

Write a short, friendly summary. Then pick the top {limit} options, ranked by the BEST combination of LOW price and HIGH rating. Give each pick a one-line reason.

Respond ONLY with a valid JSON object in this format, with no markdown or extra text:
{{
  "summary": "Your overall analysis.",
  "recommendations": [
    {{
      "rank": 1,
      "product_name": "Product Name",
      "price": 199.5,
      "rating": 4.8,
      "shop_name": "Shop Name",
      "shop_contact": "9876543210",
      "shop_email": "info@shop.com",
      "distance_km": 1.2,
      "reason": "Brief reason for the recommendation."
    }}
  ]
}}
"""

IMAGE_LABEL_PROMPT = (
    "Identify the food in this image. Respond with ONLY the name of the food "
    "(e.g. 'Burger', 'Pizza', 'Samosa'). Do not add any other text."
)

TREND_PROMPT = """You are a market analyst. The user wants to know the trend for "{product_name}".

Data:
- Our internal price (most recent): {internal_price}
- Our internal trend (last {history_limit} entries): {trend}
- Current external market price: {external_price} (Source: {external_source})

Based ONLY on this data, give a simple prediction: "BUY" (price is low/rising), "SELL" (price is high/falling) or "HOLD" (price is stable), with a one-sentence reason.

Respond ONLY with a valid JSON object in this format:
{{
  "prediction": "BUY",
  "reason": "Your brief analysis."
}}
"""
