"""
Database Schemas for the Textile ERP

Each Pydantic model corresponds to a MongoDB collection (lowercased class name).
- Product -> "product"
- Customer -> "customer"
- Order -> "order"
- Stock -> "stock"
- Return -> "return"
- Business -> "business"
- WhatsappNotification -> "whatsapp_notification"
- WhatsappMessage -> "whatsapp_message"
- Agent -> "agent"
- User -> "user"
- StockMovement -> "stock_movement"

Field names match the stored documents and the JSON the frontend sends.
"""
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

from pydantic import AliasChoices, BaseModel, EmailStr, Field, ValidationError, field_validator, model_validator

OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]
StockType = Literal["Gray Stock", "Factory Stock", "Design Stock"]
StockStatus = Literal["available", "low", "out", "processing"]


# Products

class ProductVariant(BaseModel):
    color: str = Field(..., min_length=1, description="Variant color")
    pricePerMeters: float = Field(..., ge=0, description="Price per meter (or per set)")
    stockInMeters: float = Field(0, ge=0, description="Quantity on hand for this color")


class Product(BaseModel):
    productName: str = Field(..., min_length=1, description="Product name, e.g. 'Premium Cotton Base'")
    description: Optional[str] = Field(None, description="Product description")
    category: str = Field(..., description="Category such as cotton, silk, blend")
    tags: List[str] = Field(default_factory=list, description="Search tags")
    unit: Literal["meters", "sets"] = Field("meters", description="Selling unit")
    variants: List[ProductVariant] = Field(default_factory=list)

    @field_validator("variants")
    @classmethod
    def unique_colors(cls, variants):
        colors = [v.color.strip().lower() for v in variants]
        if len(colors) != len(set(colors)):
            raise ValueError("Variant colors must be unique within a product")
        return variants


# Customers

class Customer(BaseModel):
    customerName: str = Field(..., min_length=1, description="Customer or firm name")
    customerType: Literal["Wholesale", "Retail"] = Field(..., description="Wholesale or Retail")
    email: EmailStr
    phone: str = Field(..., min_length=5, description="Phone number used for WhatsApp updates")
    city: str
    creditLimit: float = Field(..., ge=0, description="Credit limit in INR")
    address: str


# Orders

class OrderItem(BaseModel):
    product: str = Field(..., min_length=1, description="Product name at time of order")
    color: str = Field(..., min_length=1)
    quantity: float = Field(..., gt=0, description="Quantity in the item's unit")
    unit: Literal["METERS", "SETS"] = "METERS"
    pricePerMeters: float = Field(..., ge=0, description="Unit price at time of order")


class Order(BaseModel):
    customer: Optional[str] = Field(None, description="Customer name as displayed")
    customerId: Optional[str] = Field(None, description="Reference to customer _id")
    status: OrderStatus = "pending"
    orderDate: datetime
    deliveryDate: datetime
    orderItems: List[OrderItem] = Field(default_factory=list)
    notes: Optional[str] = None


class OrderUpdate(BaseModel):
    customer: Optional[str] = None
    customerId: Optional[str] = None
    status: Optional[OrderStatus] = None
    orderDate: Optional[datetime] = None
    deliveryDate: Optional[datetime] = None
    orderItems: Optional[List[OrderItem]] = None
    notes: Optional[str] = None


# Stock

class StockVariant(BaseModel):
    color: str = Field(..., min_length=1)
    quantity: float = Field(..., ge=0)
    unit: str = "meters"


class GrayStockDetails(BaseModel):
    product: str
    factory: Optional[str] = None
    agent: Optional[str] = None
    orderNumber: Optional[str] = None


class FactoryStockDetails(BaseModel):
    product: str
    processingFactory: Optional[str] = None
    processingStage: Optional[str] = None
    expectedCompletion: Optional[str] = None


class DesignStockDetails(BaseModel):
    product: str
    design: Optional[str] = None
    warehouse: Optional[str] = None


STOCK_DETAIL_MODELS = {
    "Gray Stock": GrayStockDetails,
    "Factory Stock": FactoryStockDetails,
    "Design Stock": DesignStockDetails,
}


class AdditionalInfo(BaseModel):
    batchNumber: Optional[str] = None
    qualityGrade: Optional[str] = None
    notes: Optional[str] = None


class Stock(BaseModel):
    stockType: StockType
    status: StockStatus = Field("available", description="Stored status as set by the caller")
    variants: List[StockVariant] = Field(..., min_length=1)
    stockDetails: Dict[str, Any] = Field(..., description="Shape depends on stockType")
    additionalInfo: AdditionalInfo = Field(
        default_factory=AdditionalInfo,
        validation_alias=AliasChoices("additionalInfo", "addtionalInfo"),
    )

    @model_validator(mode="after")
    def check_stock_details(self):
        detail_model = STOCK_DETAIL_MODELS[self.stockType]
        try:
            details = detail_model.model_validate(self.stockDetails)
        except ValidationError as e:
            missing = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            raise ValueError(f"Invalid stockDetails for {self.stockType}: {missing}")
        self.stockDetails = details.model_dump()
        return self


# Returns

class Return(BaseModel):
    order: str = Field(..., description="Reference to order _id")
    product: str = Field(..., min_length=1)
    color: str = Field(..., min_length=1)
    quantityInMeters: float = Field(..., gt=0)
    returnReason: str = Field(..., min_length=1)


class ReturnUpdate(BaseModel):
    product: Optional[str] = None
    color: Optional[str] = None
    quantityInMeters: Optional[float] = Field(None, gt=0)
    returnReason: Optional[str] = None
    isApprove: Optional[bool] = None
    isRejected: Optional[bool] = None


# Business profile (single document)

class Business(BaseModel):
    businessName: str
    gstNumber: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[EmailStr] = None


# WhatsApp

class WhatsappNotification(BaseModel):
    orderUpdates: bool = False
    stockAlerts: bool = False
    lowStockWarnings: bool = False
    newCustomers: bool = False
    dailyReports: bool = False
    returnRequests: bool = False
    productUpdates: bool = False


class WhatsappNotificationUpdate(BaseModel):
    orderUpdates: Optional[bool] = None
    stockAlerts: Optional[bool] = None
    lowStockWarnings: Optional[bool] = None
    newCustomers: Optional[bool] = None
    dailyReports: Optional[bool] = None
    returnRequests: Optional[bool] = None
    productUpdates: Optional[bool] = None


class WhatsappMessage(BaseModel):
    message: str = Field(..., min_length=1)
    type: Optional[str] = Field(None, description="order_update, stock_alert, return_request, product_update ...")
    sentToCount: int = Field(0, ge=0)
    status: Literal["Delivered", "Not Delivered"] = "Delivered"


class ProductUpdateBroadcast(BaseModel):
    customerIds: List[str] = Field(default_factory=list)
    productIds: List[str] = Field(default_factory=list)


# Agents and users

class Agent(BaseModel):
    name: str = Field(..., min_length=1)
    factory: str = Field(..., min_length=1)


class User(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    role: Literal["owner", "manager", "sales", "inventory head"] = "owner"


# Ledger

class StockMovement(BaseModel):
    product: str
    color: str
    unit: Optional[str] = None
    quantity: float = Field(..., description="Signed delta; negative leaves stock, positive returns it")
    source: Literal["order", "return"]
    sourceId: str
    created_at: Optional[datetime] = None
